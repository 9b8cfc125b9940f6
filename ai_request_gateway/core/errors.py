"""
Error taxonomy for the gateway.

Only configuration and template problems are raised as exceptions inside the
package; provider failures travel as tagged values and are converted to an
exception only on request.
"""

from enum import Enum


class ErrorKind(Enum):
    """Kinds of failure a gateway invocation can end in."""
    CONFIGURATION = "configuration"
    TEMPLATE_NOT_FOUND = "template_not_found"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_NETWORK = "provider_network"
    PROVIDER_STATUS = "provider_status"
    PROVIDER_EMPTY = "provider_empty"
    CANCELLED = "cancelled"


class GatewayError(Exception):
    """Base exception for the gateway."""
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str):
        super().__init__(message)


class ConfigurationError(GatewayError):
    """Gateway has no credentials or is disabled."""
    kind = ErrorKind.CONFIGURATION


class TemplateNotFound(GatewayError):
    """No prompt template is registered under the requested name."""
    kind = ErrorKind.TEMPLATE_NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Unknown prompt template: {name}")
        self.name = name


class ProviderError(GatewayError):
    """The LLM provider call failed."""

    def __init__(self, message: str, kind: ErrorKind):
        super().__init__(message)
        self.kind = kind
