"""
Quality gating for provider responses.

Scores how well-formed a structured response is. Malformed input is an
expected case here, so validation never raises.
"""

import json
import re
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional, Sequence

PASSING_SCORE = 70
MISSING_FIELD_PENALTY = 20
SHORT_SUMMARY_PENALTY = 10
CONFIDENCE_RANGE_PENALTY = 15
MIN_SUMMARY_LENGTH = 20

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)

_UNPARSED = object()


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one response."""
    parsed: Optional[Any]
    confidence: int
    is_valid: bool


def parse_structured(text: Any) -> Any:
    """Parse text as JSON, falling back to the first fenced JSON block.

    Returns the module-level sentinel when nothing parses.
    """
    if not isinstance(text, str):
        return _UNPARSED
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        pass
    match = _FENCED_JSON.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except (ValueError, RecursionError):
            pass
    return _UNPARSED


class QualityValidator:
    """Heuristic 0-100 scoring of structured responses."""

    def __init__(self, passing_score: int = PASSING_SCORE):
        self.passing_score = passing_score

    def validate(
        self,
        response_text: Any,
        expected_fields: Sequence[str]
    ) -> ValidationResult:
        """Score response_text against the expected top-level fields.

        Args:
            response_text: Raw provider output
            expected_fields: Keys the parsed object should contain

        Returns:
            ValidationResult with the parsed payload (None if unparseable)
        """
        parsed = parse_structured(response_text)
        if parsed is _UNPARSED:
            return ValidationResult(parsed=None, confidence=0, is_valid=False)

        fields = parsed if isinstance(parsed, dict) else {}
        confidence = 100

        for name in expected_fields or ():
            if name not in fields:
                confidence -= MISSING_FIELD_PENALTY

        summary = fields.get("summary")
        if isinstance(summary, str) and len(summary) < MIN_SUMMARY_LENGTH:
            confidence -= SHORT_SUMMARY_PENALTY

        reported = fields.get("confidence")
        if _is_number(reported) and not 0 <= reported <= 100:
            confidence -= CONFIDENCE_RANGE_PENALTY

        confidence = max(0, min(100, confidence))
        return ValidationResult(
            parsed=parsed,
            confidence=confidence,
            is_valid=confidence >= self.passing_score,
        )


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not a score
    return isinstance(value, Real) and not isinstance(value, bool)
