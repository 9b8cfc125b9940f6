"""
Gateway orchestrator.

Runs one invocation through template rendering, cache lookup, the provider
call, quality validation, caching and usage tracking. Every failure is
absorbed here: callers receive either a GatewayResponse or None.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from ai_request_gateway.config.loader import GatewayConfig
from ai_request_gateway.storage.models import UsageRecord, UsageSummary

from .cache import CacheStats, RequestCache, make_cache_key
from .errors import ConfigurationError, ErrorKind, GatewayError, ProviderError
from .pricing import PRICING_TABLE, PricingTable, calculate_cost
from .provider import LLMProvider, ProviderRequest, ProviderResult
from .quality import QualityValidator
from .templates import DEFAULT_TEMPLATES, TemplateRegistry
from .token_counter import EMPTY_USAGE, TokenUsage
from .usage import UsageTracker

logger = logging.getLogger(__name__)

STRUCTURED_RESPONSE_OPERATION = "structured_response"
STRUCTURED_RESPONSE_TEMPERATURE = 0.3
CONNECTION_TEST_MAX_TOKENS = 10


@dataclass(frozen=True)
class GatewayResponse:
    """Payload returned to the caller plus how it was produced."""
    request_id: str
    payload: Any
    quality: int
    cache_hit: bool


@dataclass(frozen=True)
class PerformanceMetrics:
    """Cache statistics and today's aggregate usage."""
    cache: CacheStats
    daily_usage: Optional[UsageSummary]


@dataclass(frozen=True)
class ConnectionStatus:
    """Result of a provider connectivity probe."""
    success: bool
    model: Optional[str] = None
    error: Optional[str] = None


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class RequestGateway:
    """Cache-aware, cost-tracked, quality-gated access to the LLM provider.

    Holds no per-invocation state, so one instance serves concurrent
    callers. The cache is the only shared mutable collaborator.
    """

    def __init__(
        self,
        config: GatewayConfig,
        provider: Optional[LLMProvider],
        cache: RequestCache,
        tracker: UsageTracker,
        validator: Optional[QualityValidator] = None,
        templates: TemplateRegistry = DEFAULT_TEMPLATES,
        pricing: PricingTable = PRICING_TABLE,
        timer: Callable[[], float] = time.perf_counter,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.provider = provider
        self.cache = cache
        self.tracker = tracker
        self.validator = validator or QualityValidator()
        self.templates = templates
        self.pricing = pricing
        self._timer = timer
        self._clock = clock

    def is_configured(self) -> bool:
        return self.provider is not None and self.config.is_usable

    def ensure_configured(self) -> None:
        """Raise ConfigurationError unless the provider may be contacted."""
        if not self.config.provider.enabled:
            raise ConfigurationError("AI gateway is disabled")
        if not self.config.provider.has_api_key:
            raise ConfigurationError("AI provider API key is not configured")
        if self.provider is None:
            raise ConfigurationError("AI provider client is not configured")

    def execute(
        self,
        operation: str,
        fields: Mapping[str, Any],
        user_id: str = "anonymous",
        expected_fields: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[GatewayResponse]:
        """Run a templated operation.

        Args:
            operation: Registered template name
            fields: Values for the template placeholders
            user_id: User the usage is attributed to
            expected_fields: Top-level keys to validate; None skips validation
            cancel_event: Set by the caller to abandon the request

        Cancellation takes effect between pipeline steps: it is checked
        before the provider call and again when the call returns. A provider
        call already in flight runs until it completes or hits
        timeout_seconds, and a result arriving after cancellation is
        discarded without being cached or tracked.

        Returns:
            GatewayResponse, or None on any failure
        """
        try:
            self.ensure_configured()
            template = self.templates.get(operation)
            prompt = template.render(fields)
        except GatewayError as e:
            logger.warning("AI %s skipped: %s", operation, e)
            return None

        return self._run(
            prompt=prompt,
            operation=operation,
            user_id=user_id,
            max_tokens=min(template.max_tokens, self.config.provider.max_tokens),
            temperature=template.temperature,
            ttl=self.config.cache_ttl_for(operation),
            expected_fields=expected_fields,
            cancel_event=cancel_event,
        )

    def execute_prompt(
        self,
        prompt: str,
        operation: str = STRUCTURED_RESPONSE_OPERATION,
        user_id: str = "system",
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        expected_fields: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[GatewayResponse]:
        """Run a caller-supplied prompt through the same pipeline, untemplated."""
        try:
            self.ensure_configured()
        except ConfigurationError as e:
            logger.warning("AI %s skipped: %s", operation, e)
            return None

        provider_settings = self.config.provider
        return self._run(
            prompt=prompt,
            operation=operation,
            user_id=user_id,
            max_tokens=min(max_tokens or provider_settings.max_tokens, provider_settings.max_tokens),
            temperature=provider_settings.temperature if temperature is None else temperature,
            ttl=self.config.cache_ttl_for(operation),
            expected_fields=expected_fields,
            cancel_event=cancel_event,
        )

    def structured_response(
        self,
        prompt: str,
        user_id: str = "system",
        expected_fields: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Any]:
        """Generic entry point for raw prompts expecting structured output."""
        response = self.execute_prompt(
            prompt,
            operation=STRUCTURED_RESPONSE_OPERATION,
            user_id=user_id,
            temperature=STRUCTURED_RESPONSE_TEMPERATURE,
            expected_fields=expected_fields,
            cancel_event=cancel_event,
        )
        return response.payload if response else None

    def _run(self, prompt: str, operation: str, **kwargs: Any) -> Optional[GatewayResponse]:
        try:
            return self._pipeline(prompt, operation, **kwargs)
        except Exception:
            logger.exception("AI %s failed inside the gateway", operation)
            return None

    def _pipeline(
        self,
        prompt: str,
        operation: str,
        user_id: str,
        max_tokens: int,
        temperature: float,
        ttl: float,
        expected_fields: Optional[Sequence[str]],
        cancel_event: Optional[threading.Event],
    ) -> Optional[GatewayResponse]:
        started = self._timer()
        request_id = uuid.uuid4().hex
        model = self.config.provider.model
        key = make_cache_key(prompt, model, temperature, self.config.cache.key_prefix_chars)

        cached, found = self._cache_get(key)
        if found:
            logger.debug("AI %s cache hit for request %s", operation, request_id)
            self.tracker.track(self._record(
                request_id, user_id, operation, model, started,
                usage=EMPTY_USAGE, cost=0.0, quality=100, cache_hit=True,
            ))
            return GatewayResponse(request_id=request_id, payload=cached, quality=100, cache_hit=True)
        logger.debug("AI %s cache miss for request %s", operation, request_id)

        if _is_cancelled(cancel_event):
            logger.info("AI %s request %s cancelled before provider call", operation, request_id)
            return None

        result = self._call_provider(ProviderRequest(
            model=model,
            prompt=prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout_seconds=self.config.provider.timeout_seconds,
        ))

        if _is_cancelled(cancel_event):
            logger.info("AI %s request %s abandoned by caller", operation, request_id)
            return None

        if not result.ok:
            kind = result.error_kind or ErrorKind.PROVIDER_NETWORK
            logger.warning("AI %s error (%s): %s", operation, kind.value, result.error_message)
            self.tracker.track(self._record(
                request_id, user_id, operation, model, started,
                usage=EMPTY_USAGE, cost=0.0, quality=0, cache_hit=False,
                error_kind=kind.value,
            ))
            return None

        response = result.response
        cost = calculate_cost(model, response.usage, self.pricing)

        if expected_fields is not None:
            validation = self.validator.validate(response.content, expected_fields)
            quality = validation.confidence
            payload = validation.parsed if validation.parsed is not None else response.content
            cacheable = validation.is_valid
            if not cacheable:
                logger.info(
                    "AI %s response scored %d, returning uncached", operation, quality
                )
        else:
            quality = 100
            payload = response.content
            cacheable = True

        if cacheable:
            self._cache_set(key, payload, ttl)

        self.tracker.track(self._record(
            request_id, user_id, operation, model, started,
            usage=response.usage, cost=cost, quality=quality, cache_hit=False,
        ))
        return GatewayResponse(request_id=request_id, payload=payload, quality=quality, cache_hit=False)

    def _cache_get(self, key: str) -> Tuple[Any, bool]:
        # A failing cache backend degrades to a miss
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning("Cache lookup failed, treating as miss: %s", e)
            return None, False

    def _cache_set(self, key: str, value: Any, ttl: float) -> None:
        try:
            self.cache.set(key, value, ttl)
        except Exception as e:
            logger.warning("Cache write failed, response not cached: %s", e)

    def _call_provider(self, request: ProviderRequest) -> ProviderResult:
        try:
            return self.provider.complete(request)
        except Exception as e:
            logger.exception("Unexpected provider failure")
            return ProviderResult.failure(ErrorKind.PROVIDER_NETWORK, str(e))

    def _record(
        self,
        request_id: str,
        user_id: str,
        operation: str,
        model: str,
        started: float,
        usage: TokenUsage,
        cost: float,
        quality: int,
        cache_hit: bool,
        error_kind: Optional[str] = None,
    ) -> UsageRecord:
        return UsageRecord(
            request_id=request_id,
            user_id=user_id,
            operation=operation,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            cost=cost,
            latency_ms=int((self._timer() - started) * 1000),
            cache_hit=cache_hit,
            model_used=model,
            quality=quality,
            timestamp=self._clock(),
            error_kind=error_kind,
        )

    def performance_metrics(self) -> PerformanceMetrics:
        """Cache statistics plus today's usage across all users."""
        return PerformanceMetrics(
            cache=self.cache.stats(),
            daily_usage=self.tracker.daily_summary(),
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("AI request cache cleared")

    def test_connection(self) -> ConnectionStatus:
        """Send a minimal prompt to check credentials and reachability."""
        try:
            self.ensure_configured()
        except ConfigurationError as e:
            return ConnectionStatus(success=False, error=str(e))

        result = self._call_provider(ProviderRequest(
            model=self.config.provider.model,
            prompt="Test connection",
            max_tokens=CONNECTION_TEST_MAX_TOKENS,
            temperature=self.config.provider.temperature,
            timeout_seconds=self.config.provider.timeout_seconds,
        ))
        try:
            response = result.unwrap()
        except ProviderError as e:
            return ConnectionStatus(success=False, error=f"{e.kind.value}: {e}")
        return ConnectionStatus(success=True, model=response.model or self.config.provider.model)
