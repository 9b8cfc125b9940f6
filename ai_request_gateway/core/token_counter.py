"""
Token counting for provider responses.

Normalizes the usage block reported by the LLM provider.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Holds the exact counts reported by the provider, never estimates.
    """
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens


EMPTY_USAGE = TokenUsage(input_tokens=0, output_tokens=0)


def usage_from_response(usage: Any) -> TokenUsage:
    """Build TokenUsage from an OpenAI-style usage object.

    Missing usage or missing counters are treated as zero.
    """
    if usage is None:
        return EMPTY_USAGE
    return TokenUsage(
        input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
    )
