"""
OpenAI provider adapter.

Issues one chat completion per request with an explicit timeout and no
retries. Failures come back as tagged ProviderResult values instead of
exceptions so the gateway can branch on the kind of failure.
"""

import logging
from typing import List, Optional

import openai
from openai import OpenAI

from ..core.errors import ErrorKind
from ..core.provider import ProviderRequest, ProviderResponse, ProviderResult
from ..core.token_counter import EMPTY_USAGE, usage_from_response

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """LLMProvider backed by OpenAI chat completions."""

    def __init__(self, api_key: str, client: Optional[OpenAI] = None):
        """Initialize the provider.

        Args:
            api_key: OpenAI API key (required)
            client: Pre-built client, mainly for tests

        Raises:
            ValueError: If api_key is missing/empty
        """
        if not api_key or not api_key.strip():
            raise ValueError("api_key is required and cannot be empty")
        # Retries are a caller concern
        self.client = client or OpenAI(api_key=api_key, max_retries=0)

    def complete(self, request: ProviderRequest) -> ProviderResult:
        """Run one completion under the request's timeout."""
        messages: List[dict] = [{"role": "user", "content": request.prompt}]
        try:
            response = self.client.with_options(
                timeout=request.timeout_seconds,
                max_retries=0,
            ).chat.completions.create(
                model=request.model,
                messages=messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        except openai.APITimeoutError as e:
            return ProviderResult.failure(ErrorKind.PROVIDER_TIMEOUT, f"Provider timed out: {e}")
        except openai.APIConnectionError as e:
            return ProviderResult.failure(ErrorKind.PROVIDER_NETWORK, f"Provider unreachable: {e}")
        except openai.APIStatusError as e:
            return ProviderResult.failure(
                ErrorKind.PROVIDER_STATUS,
                f"Provider returned status {e.status_code}: {e.message}",
            )
        except openai.OpenAIError as e:
            return ProviderResult.failure(ErrorKind.PROVIDER_NETWORK, f"Provider call failed: {e}")

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            return ProviderResult.failure(ErrorKind.PROVIDER_EMPTY, "Empty response from provider")

        usage = usage_from_response(getattr(response, "usage", None))
        if usage is EMPTY_USAGE:
            logger.warning(
                "Provider response %s carried no usage information",
                getattr(response, "id", None)
            )

        return ProviderResult.success(ProviderResponse(
            content=content,
            usage=usage,
            model=getattr(response, "model", None) or request.model,
            response_id=getattr(response, "id", None),
        ))
