"""Shared fakes for gateway tests."""

import json
from typing import List, Optional

import pytest

from ai_request_gateway.config.loader import GatewayConfig, ProviderSettings
from ai_request_gateway.core.errors import ErrorKind
from ai_request_gateway.core.provider import ProviderRequest, ProviderResponse, ProviderResult
from ai_request_gateway.core.token_counter import TokenUsage


class StubProvider:
    """Provider returning queued results and recording each request."""

    def __init__(self, *results: ProviderResult):
        self.results: List[ProviderResult] = list(results)
        self.requests: List[ProviderRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def complete(self, request: ProviderRequest) -> ProviderResult:
        self.requests.append(request)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def ok_result(content, input_tokens=200, output_tokens=100, model="gpt-3.5-turbo"):
    if not isinstance(content, str):
        content = json.dumps(content)
    return ProviderResult.success(ProviderResponse(
        content=content,
        usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
        model=model,
        response_id="chatcmpl-1",
    ))


def failed_result(kind: ErrorKind = ErrorKind.PROVIDER_TIMEOUT, message: str = "timed out"):
    return ProviderResult.failure(kind, message)


def make_config(api_key: Optional[str] = "sk-test", enabled: bool = True, **provider) -> GatewayConfig:
    return GatewayConfig(provider=ProviderSettings(api_key=api_key, enabled=enabled, **provider))


ISSUE_PAYLOAD = {
    "summary": "Drawings reach permit review incomplete, causing resubmittals.",
    "rootCauses": ["no intake checklist", "late consultant input"],
    "impact": "Average two-week schedule slip per project",
    "recommendations": ["introduce intake checklist", "schedule consultant reviews"],
    "confidence": 85,
}


@pytest.fixture
def issue_payload():
    return dict(ISSUE_PAYLOAD)
