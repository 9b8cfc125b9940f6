"""
Provider contract.

The gateway talks to the LLM provider only through these types. A provider
call returns a ProviderResult tagged with an ErrorKind on failure rather than
raising, so the orchestrator can branch on the kind of failure.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from .errors import ErrorKind, ProviderError
from .token_counter import TokenUsage


@dataclass(frozen=True)
class ProviderRequest:
    """One completion request."""
    model: str
    prompt: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


@dataclass(frozen=True)
class ProviderResponse:
    """Completion text plus the provider's reported usage."""
    content: str
    usage: TokenUsage
    model: str
    response_id: Optional[str] = None


@dataclass(frozen=True)
class ProviderResult:
    """Either a response or an error kind with a message."""
    response: Optional[ProviderResponse] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""

    @property
    def ok(self) -> bool:
        return self.response is not None

    @classmethod
    def success(cls, response: ProviderResponse) -> "ProviderResult":
        return cls(response=response)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ProviderResult":
        return cls(error_kind=kind, error_message=message)

    def unwrap(self) -> ProviderResponse:
        """Return the response or raise ProviderError."""
        if self.response is None:
            raise ProviderError(self.error_message, self.error_kind or ErrorKind.PROVIDER_NETWORK)
        return self.response


class LLMProvider(Protocol):
    """Contract for the external text-generation API."""

    def complete(self, request: ProviderRequest) -> ProviderResult: ...
