"""
Per-operation entry points for application code.

Each function picks its template and expected fields, delegates to the
gateway and converts the payload to the operation's result type. The public
contract is a typed result or None.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar

from ..config.loader import GatewayConfig
from ..core.cache import InMemoryRequestCache
from ..core.gateway import GatewayResponse, PerformanceMetrics, RequestGateway
from ..core.provider import LLMProvider
from ..core.results import (
    CLUSTER_SUMMARY_FIELDS,
    ISSUE_SUMMARY_FIELDS,
    REQUIREMENT_CARDS_FIELDS,
    ClusterSummary,
    IssueSummary,
    RequirementCards,
)
from ..core.usage import UsageTracker
from ..storage.repository import UsageRepository
from .openai_client import OpenAIProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CLUSTER_ISSUES = 5
CLUSTER_ISSUE_CHARS = 100


@dataclass(frozen=True)
class ClusterIssue:
    """Issue summary line fed into a cluster analysis."""
    description: str
    heatmap_score: float = 0.0


def format_issue_list(issues: Sequence[ClusterIssue]) -> str:
    """Compact listing of the first few issues with their heat-map scores."""
    return ", ".join(
        f"{issue.description[:CLUSTER_ISSUE_CHARS]}...({issue.heatmap_score:g})"
        for issue in issues[:MAX_CLUSTER_ISSUES]
    )


def _context_value(business_context: Optional[Mapping[str, Any]], key: str) -> Any:
    if not business_context:
        return None
    return business_context.get(key)


class AIOperations:
    """Application-facing AI operations over one RequestGateway."""

    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    def _typed(
        self,
        response: Optional[GatewayResponse],
        operation: str,
        build: Callable[[Mapping[str, Any]], T]
    ) -> Optional[T]:
        if response is None:
            return None
        if not isinstance(response.payload, Mapping):
            logger.warning(
                "AI %s returned unstructured output (quality %d)",
                operation, response.quality
            )
            return None
        return build(response.payload)

    def summarize_issue(
        self,
        description: str,
        department: Optional[str] = None,
        category: Optional[str] = None,
        business_context: Optional[Mapping[str, Any]] = None,
        user_id: str = "anonymous",
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[IssueSummary]:
        """Summarize one issue with root causes, impact and recommendations."""
        response = self.gateway.execute(
            "issue_summary",
            {
                "description": description,
                "industry": _context_value(business_context, "industry"),
                "size": _context_value(business_context, "size"),
                "department": department,
                "category": category,
            },
            user_id=user_id,
            expected_fields=ISSUE_SUMMARY_FIELDS,
            cancel_event=cancel_event,
        )
        return self._typed(response, "issue_summary", IssueSummary.from_payload)

    def summarize_cluster(
        self,
        name: str,
        description: str,
        issues: Sequence[ClusterIssue],
        business_context: Optional[Mapping[str, Any]] = None,
        user_id: str = "anonymous",
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[ClusterSummary]:
        """Consolidated analysis of a cluster of related issues."""
        response = self.gateway.execute(
            "cluster_summary",
            {
                "name": name,
                "description": description,
                "count": len(issues),
                "issue_list": format_issue_list(issues),
            },
            user_id=user_id,
            expected_fields=CLUSTER_SUMMARY_FIELDS,
            cancel_event=cancel_event,
        )
        return self._typed(response, "cluster_summary", ClusterSummary.from_payload)

    def generate_requirements_from_summary(
        self,
        summary: str,
        title: str,
        goal: str,
        business_context: Optional[Mapping[str, Any]] = None,
        user_id: str = "anonymous",
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[RequirementCards]:
        """Requirement cards for an initiative from its summary."""
        response = self.gateway.execute(
            "requirements_generation",
            {
                "title": title,
                "goal": goal,
                "summary": summary,
                "industry": _context_value(business_context, "industry"),
            },
            user_id=user_id,
            expected_fields=REQUIREMENT_CARDS_FIELDS,
            cancel_event=cancel_event,
        )
        return self._typed(response, "requirements_generation", RequirementCards.from_payload)

    def generate_requirement_cards(
        self,
        title: str,
        problem: str,
        goal: str,
        business_context: Optional[Mapping[str, Any]] = None,
        user_id: str = "system",
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[RequirementCards]:
        """Requirement cards for an initiative from its problem statement."""
        summary = f"{problem}\n\nGoal: {goal}"
        return self.generate_requirements_from_summary(
            summary, title, goal,
            business_context=business_context,
            user_id=user_id,
            cancel_event=cancel_event,
        )

    def issue_insights(
        self,
        description: str,
        business_context: Optional[Mapping[str, Any]] = None,
        user_id: str = "anonymous",
    ) -> Optional[str]:
        """Issue summary rendered as plain text."""
        result = self.summarize_issue(
            description, business_context=business_context, user_id=user_id
        )
        return result.to_text() if result else None

    def initiative_recommendations(
        self,
        title: str,
        problem: str,
        user_id: str = "system",
    ) -> Optional[str]:
        """Free-text implementation recommendations for an initiative."""
        response = self.gateway.execute(
            "initiative_recommendations",
            {"title": title, "problem": problem},
            user_id=user_id,
        )
        if response is None:
            return None
        return str(response.payload)

    def structured_response(
        self,
        prompt: str,
        user_id: str = "system",
        expected_fields: Optional[Sequence[str]] = None,
    ) -> Optional[Any]:
        return self.gateway.structured_response(
            prompt, user_id=user_id, expected_fields=expected_fields
        )

    def performance_metrics(self) -> PerformanceMetrics:
        return self.gateway.performance_metrics()

    def clear_cache(self) -> None:
        self.gateway.clear_cache()

    def close(self) -> None:
        """Flush pending usage writes."""
        self.gateway.tracker.close()


def build_gateway(
    config: GatewayConfig,
    provider: Optional[LLMProvider] = None,
    background_tracking: bool = True,
) -> RequestGateway:
    """Construct a gateway and its collaborators from configuration.

    Call once at process start and share the result. When provider is
    omitted an OpenAIProvider is created if the config carries an API key.

    Args:
        config: Startup configuration
        provider: Provider override, e.g. a stub in tests
        background_tracking: Write usage records on a worker thread

    Returns:
        Ready-to-use RequestGateway
    """
    if provider is None and config.provider.has_api_key:
        provider = OpenAIProvider(api_key=config.provider.api_key)

    repository = UsageRepository(config.db_path)
    repository.initialize()

    executor = None
    if background_tracking:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="usage-tracker")

    return RequestGateway(
        config=config,
        provider=provider,
        cache=InMemoryRequestCache(max_entries=config.cache.max_entries),
        tracker=UsageTracker(repository, executor=executor),
    )


def create_operations(
    config: GatewayConfig,
    provider: Optional[LLMProvider] = None,
    background_tracking: bool = True,
) -> AIOperations:
    """Build the gateway and wrap it in AIOperations."""
    return AIOperations(build_gateway(config, provider, background_tracking))
