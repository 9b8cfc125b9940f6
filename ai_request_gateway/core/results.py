"""
Typed results for gateway operations.

Each operation has one result type built from the validated payload in a
single place, with defaults for anything the model left out.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple


class StrategicPriority(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class CardType(Enum):
    BUSINESS = "BUSINESS"
    FUNCTIONAL = "FUNCTIONAL"
    ACCEPTANCE = "ACCEPTANCE"


class CardPriority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


ISSUE_SUMMARY_FIELDS = ("summary", "rootCauses", "impact", "recommendations", "confidence")
CLUSTER_SUMMARY_FIELDS = (
    "consolidatedSummary",
    "crossIssuePatterns",
    "strategicPriority",
    "initiativeRecommendations",
    "confidence",
)
REQUIREMENT_CARDS_FIELDS = ("cards", "confidence")


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _text_list(value: Any) -> Tuple[str, ...]:
    if isinstance(value, list):
        return tuple(str(item) for item in value if item is not None)
    if isinstance(value, str) and value:
        return (value,)
    return ()


def _confidence(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return default
    return int(min(max(value, 0), 100))


def _enum(enum_cls, value: Any, default):
    if isinstance(value, str):
        normalized = value.strip().upper()
        if normalized == "MED":
            normalized = "MEDIUM"
        try:
            return enum_cls(normalized)
        except ValueError:
            pass
    return default


@dataclass(frozen=True)
class IssueSummary:
    summary: str
    root_causes: Tuple[str, ...]
    impact: str
    recommendations: Tuple[str, ...]
    confidence: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "IssueSummary":
        return cls(
            summary=_text(payload.get("summary"), "AI analysis generated"),
            root_causes=_text_list(payload.get("rootCauses")),
            impact=_text(payload.get("impact"), "Impact analysis pending"),
            recommendations=_text_list(payload.get("recommendations")),
            confidence=_confidence(payload.get("confidence"), 75),
        )

    def to_text(self) -> str:
        """Plain-text rendering for callers that display prose."""
        causes = "\n".join(f"• {c}" for c in self.root_causes)
        recommendations = "\n".join(f"• {r}" for r in self.recommendations)
        return (
            f"Summary: {self.summary}\n\n"
            f"Root Causes:\n{causes}\n\n"
            f"Impact: {self.impact}\n\n"
            f"Recommendations:\n{recommendations}"
        )


@dataclass(frozen=True)
class ClusterSummary:
    consolidated_summary: str
    cross_issue_patterns: Tuple[str, ...]
    strategic_priority: StrategicPriority
    initiative_recommendations: Tuple[str, ...]
    confidence: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClusterSummary":
        return cls(
            consolidated_summary=_text(
                payload.get("consolidatedSummary") or payload.get("summary"),
                "Cluster analysis generated",
            ),
            cross_issue_patterns=_text_list(payload.get("crossIssuePatterns")),
            strategic_priority=_enum(
                StrategicPriority, payload.get("strategicPriority"), StrategicPriority.MEDIUM
            ),
            initiative_recommendations=_text_list(payload.get("initiativeRecommendations")),
            confidence=_confidence(payload.get("confidence"), 80),
        )


@dataclass(frozen=True)
class RequirementCard:
    title: str
    description: str
    type: CardType
    priority: CardPriority
    category: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["RequirementCard"]:
        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            return None
        category = payload.get("category")
        return cls(
            title=title,
            description=_text(payload.get("description"), ""),
            type=_enum(CardType, payload.get("type"), CardType.FUNCTIONAL),
            priority=_enum(CardPriority, payload.get("priority"), CardPriority.MEDIUM),
            category=category if isinstance(category, str) and category else None,
        )


@dataclass(frozen=True)
class RequirementCards:
    cards: Tuple[RequirementCard, ...]
    confidence: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RequirementCards":
        raw_cards = payload.get("cards")
        cards: List[RequirementCard] = []
        if isinstance(raw_cards, list):
            for item in raw_cards:
                if isinstance(item, Mapping):
                    card = RequirementCard.from_payload(item)
                    if card is not None:
                        cards.append(card)
        return cls(
            cards=tuple(cards),
            confidence=_confidence(payload.get("confidence"), 75),
        )
