"""
Unit tests for the gateway orchestrator.

Covers caching, quality gating, failure absorption, cancellation and
usage accounting against a stub provider.
"""

import threading
from datetime import datetime
from unittest.mock import Mock

import pytest

from ai_request_gateway.core.cache import InMemoryRequestCache
from ai_request_gateway.core.errors import ErrorKind
from ai_request_gateway.core.gateway import (
    CONNECTION_TEST_MAX_TOKENS,
    RequestGateway,
)
from ai_request_gateway.core.results import ISSUE_SUMMARY_FIELDS
from ai_request_gateway.core.usage import UsageTracker
from ai_request_gateway.storage.models import UsageSummary

from conftest import StubProvider, failed_result, make_config, ok_result

NOW = datetime(2024, 3, 5, 14, 30)
ISSUE_FIELDS = {"description": "Permit drawings keep coming back", "department": "Design"}


class FakeTimer:
    """perf_counter stand-in that advances 0.25s per reading."""

    def __init__(self):
        self.value = 0.0

    def __call__(self):
        current = self.value
        self.value += 0.25
        return current


def make_gateway(provider, config=None, cache=None, tracker=None):
    return RequestGateway(
        config=config or make_config(),
        provider=provider,
        cache=cache or InMemoryRequestCache(),
        tracker=tracker or Mock(spec=UsageTracker),
        timer=FakeTimer(),
        clock=lambda: NOW,
    )


def tracked_records(gateway):
    return [c.args[0] for c in gateway.tracker.track.call_args_list]


class TestExecute:
    """Test the templated execution path."""

    def test_miss_then_hit(self, issue_payload):
        provider = StubProvider(ok_result(issue_payload))
        gateway = make_gateway(provider)

        first = gateway.execute("issue_summary", ISSUE_FIELDS, user_id="alice",
                                expected_fields=ISSUE_SUMMARY_FIELDS)
        second = gateway.execute("issue_summary", ISSUE_FIELDS, user_id="alice",
                                 expected_fields=ISSUE_SUMMARY_FIELDS)

        assert provider.calls == 1
        assert first.payload == issue_payload
        assert not first.cache_hit
        assert first.quality == 100
        assert second.cache_hit
        assert second.payload == issue_payload
        assert second.request_id != first.request_id

    def test_provider_request_uses_template_settings(self, issue_payload):
        provider = StubProvider(ok_result(issue_payload))
        gateway = make_gateway(provider, config=make_config(max_tokens=250, timeout_seconds=12))

        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        request = provider.requests[0]
        assert request.model == "gpt-3.5-turbo"
        assert request.max_tokens == 250
        assert request.temperature == 0.3
        assert request.timeout_seconds == 12
        assert "Permit drawings keep coming back" in request.prompt

    def test_usage_recorded_for_provider_call(self, issue_payload):
        provider = StubProvider(ok_result(issue_payload, input_tokens=1000, output_tokens=500))
        gateway = make_gateway(provider)

        response = gateway.execute("issue_summary", ISSUE_FIELDS, user_id="alice",
                                   expected_fields=ISSUE_SUMMARY_FIELDS)

        [record] = tracked_records(gateway)
        assert record.request_id == response.request_id
        assert record.user_id == "alice"
        assert record.operation == "issue_summary"
        assert record.total_tokens == 1500
        assert record.cost == pytest.approx(0.0025)
        assert record.latency_ms == 250
        assert record.quality == 100
        assert not record.cache_hit
        assert record.model_used == "gpt-3.5-turbo"
        assert record.timestamp == NOW
        assert record.error_kind is None

    def test_cache_hit_recorded_at_zero_cost(self, issue_payload):
        gateway = make_gateway(StubProvider(ok_result(issue_payload)))
        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        hit = tracked_records(gateway)[1]
        assert hit.cache_hit
        assert hit.cost == 0.0
        assert hit.total_tokens == 0
        assert hit.quality == 100

    def test_low_quality_response_not_cached(self):
        """A sub-threshold response is returned but never cached."""
        provider = StubProvider(ok_result({"summary": "short"}))
        cache = InMemoryRequestCache()
        gateway = make_gateway(provider, cache=cache)

        first = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        second = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert provider.calls == 2
        assert len(cache) == 0
        assert first.quality < 70
        assert first.payload == {"summary": "short"}
        assert not second.cache_hit
        assert [r.quality for r in tracked_records(gateway)] == [first.quality, second.quality]

    def test_unparseable_response_returns_raw_text(self):
        provider = StubProvider(ok_result("I cannot produce JSON today"))
        gateway = make_gateway(provider)

        response = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert response.payload == "I cannot produce JSON today"
        assert response.quality == 0
        assert len(gateway.cache) == 0

    def test_free_text_operation_skips_validation(self):
        provider = StubProvider(ok_result("Phase the rollout by studio."))
        gateway = make_gateway(provider)

        response = gateway.execute("initiative_recommendations", {"title": "T", "problem": "P"})

        assert response.payload == "Phase the rollout by studio."
        assert response.quality == 100
        assert len(gateway.cache) == 1

    def test_per_operation_ttl_applied(self, issue_payload):
        from ai_request_gateway.config.loader import GatewayConfig, OperationSettings

        base = make_config()
        config = GatewayConfig(
            provider=base.provider,
            operations={"issue_summary": OperationSettings(cache_ttl_seconds=5)},
        )
        cache = Mock(wraps=InMemoryRequestCache())
        gateway = make_gateway(StubProvider(ok_result(issue_payload)), config=config, cache=cache)

        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert cache.set.call_args.args[2] == 5

    def test_provider_timeout_returns_none(self):
        """A timed-out call yields None and one error record."""
        provider = StubProvider(failed_result(ErrorKind.PROVIDER_TIMEOUT))
        gateway = make_gateway(provider)

        response = gateway.execute("issue_summary", ISSUE_FIELDS, user_id="alice",
                                   expected_fields=ISSUE_SUMMARY_FIELDS)

        assert response is None
        assert len(gateway.cache) == 0
        [record] = tracked_records(gateway)
        assert record.error_kind == "provider_timeout"
        assert not record.cache_hit
        assert record.cost == 0.0
        assert record.quality == 0

    @pytest.mark.parametrize("kind", [
        ErrorKind.PROVIDER_NETWORK,
        ErrorKind.PROVIDER_STATUS,
        ErrorKind.PROVIDER_EMPTY,
    ])
    def test_provider_failures_are_absorbed(self, kind):
        gateway = make_gateway(StubProvider(failed_result(kind, "boom")))
        assert gateway.execute("issue_summary", ISSUE_FIELDS) is None
        assert tracked_records(gateway)[0].error_kind == kind.value

    def test_provider_exception_is_absorbed(self):
        provider = Mock()
        provider.complete.side_effect = RuntimeError("socket closed")
        gateway = make_gateway(provider)

        assert gateway.execute("issue_summary", ISSUE_FIELDS) is None
        assert tracked_records(gateway)[0].error_kind == "provider_network"

    def test_unknown_template_returns_none(self):
        provider = StubProvider(ok_result("{}"))
        gateway = make_gateway(provider)

        assert gateway.execute("no_such_operation", {}) is None
        assert provider.calls == 0
        assert tracked_records(gateway) == []

    @pytest.mark.parametrize("config", [
        make_config(api_key=None),
        make_config(enabled=False),
    ])
    def test_unconfigured_gateway_never_calls_provider(self, config):
        provider = StubProvider(ok_result("{}"))
        gateway = make_gateway(provider, config=config)

        assert not gateway.is_configured()
        assert gateway.execute("issue_summary", ISSUE_FIELDS) is None
        assert provider.calls == 0
        assert tracked_records(gateway) == []

    def test_missing_provider_client(self):
        gateway = make_gateway(None)
        assert gateway.execute("issue_summary", ISSUE_FIELDS) is None

    def test_cancelled_before_call(self):
        provider = StubProvider(ok_result("{}"))
        gateway = make_gateway(provider)
        cancel = threading.Event()
        cancel.set()

        assert gateway.execute("issue_summary", ISSUE_FIELDS, cancel_event=cancel) is None
        assert provider.calls == 0
        assert tracked_records(gateway) == []

    def test_cancelled_during_call(self, issue_payload):
        """A result arriving after cancellation is discarded."""
        cancel = threading.Event()
        result = ok_result(issue_payload)
        provider = Mock()

        def complete(request):
            cancel.set()
            return result

        provider.complete.side_effect = complete
        gateway = make_gateway(provider)

        response = gateway.execute("issue_summary", ISSUE_FIELDS,
                                   expected_fields=ISSUE_SUMMARY_FIELDS, cancel_event=cancel)

        assert response is None
        assert len(gateway.cache) == 0
        assert tracked_records(gateway) == []

    def test_cached_payload_isolated_from_caller(self, issue_payload):
        gateway = make_gateway(StubProvider(ok_result(issue_payload)))
        first = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        first.payload["rootCauses"].append("tampered")

        second = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        assert "tampered" not in second.payload["rootCauses"]


class TestStructuredResponse:
    """Test the raw prompt entry point."""

    def test_returns_parsed_payload(self):
        provider = StubProvider(ok_result({"answer": 42, "summary": "The answer is forty-two."}))
        gateway = make_gateway(provider)

        payload = gateway.structured_response("Answer in JSON", expected_fields=["answer"])

        assert payload == {"answer": 42, "summary": "The answer is forty-two."}
        assert provider.requests[0].prompt == "Answer in JSON"
        assert provider.requests[0].temperature == 0.3
        assert tracked_records(gateway)[0].operation == "structured_response"
        assert tracked_records(gateway)[0].user_id == "system"

    def test_without_expected_fields_returns_text(self):
        gateway = make_gateway(StubProvider(ok_result('{"a": 1}')))
        assert gateway.structured_response("raw") == '{"a": 1}'

    def test_failure_returns_none(self):
        gateway = make_gateway(StubProvider(failed_result()))
        assert gateway.structured_response("raw") is None

    def test_execute_prompt_caps_max_tokens(self):
        provider = StubProvider(ok_result("text"))
        gateway = make_gateway(provider, config=make_config(max_tokens=100))
        gateway.execute_prompt("p", operation="adhoc", max_tokens=5000)
        assert provider.requests[0].max_tokens == 100


class TestMetricsAndConnection:
    """Test metrics, cache reset and connectivity probe."""

    def test_performance_metrics(self, issue_payload):
        tracker = Mock(spec=UsageTracker)
        summary = UsageSummary(
            total_requests=2, total_tokens=300, total_cost=0.0005,
            avg_latency_ms=125.0, cache_hit_rate=0.5, avg_quality=100.0
        )
        tracker.daily_summary.return_value = summary
        gateway = make_gateway(StubProvider(ok_result(issue_payload)), tracker=tracker)

        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)
        metrics = gateway.performance_metrics()

        assert metrics.cache.size == 1
        assert metrics.cache.hits == 1
        assert metrics.cache.misses == 1
        assert metrics.cache.hit_rate == 0.5
        assert metrics.daily_usage == summary

    def test_clear_cache(self, issue_payload):
        provider = StubProvider(ok_result(issue_payload))
        gateway = make_gateway(provider)
        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        gateway.clear_cache()
        gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert provider.calls == 2

    def test_connection_success(self):
        provider = StubProvider(ok_result("OK", model="gpt-3.5-turbo-0125"))
        gateway = make_gateway(provider)

        status = gateway.test_connection()

        assert status.success
        assert status.model == "gpt-3.5-turbo-0125"
        assert provider.requests[0].max_tokens == CONNECTION_TEST_MAX_TOKENS
        assert tracked_records(gateway) == []

    def test_connection_failure(self):
        gateway = make_gateway(StubProvider(failed_result(ErrorKind.PROVIDER_STATUS, "401")))
        status = gateway.test_connection()
        assert not status.success
        assert "provider_status" in status.error

    def test_connection_unconfigured(self):
        status = make_gateway(StubProvider(ok_result("OK")), config=make_config(api_key=None)).test_connection()
        assert not status.success
        assert "API key" in status.error


class TestConcurrentCallers:
    """One gateway instance serves many threads."""

    def test_parallel_identical_requests(self, issue_payload):
        provider = StubProvider(ok_result(issue_payload))
        gateway = make_gateway(provider)
        results = []

        def worker():
            results.append(gateway.execute(
                "issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS
            ))

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(r is not None and r.payload == issue_payload for r in results)
        assert len(tracked_records(gateway)) == 10
        assert len(gateway.cache) == 1


class TestCollaboratorFailures:
    """Failures inside the pipeline never reach the caller."""

    def test_cache_lookup_failure_is_a_miss(self):
        cache = Mock(spec=InMemoryRequestCache)
        cache.get.side_effect = ConnectionError("cache backend down")
        provider = StubProvider(ok_result("Phase the rollout by studio."))
        gateway = make_gateway(provider, cache=cache)

        response = gateway.execute("initiative_recommendations", {"title": "T", "problem": "P"})

        assert response.payload == "Phase the rollout by studio."
        assert not response.cache_hit
        assert provider.calls == 1
        assert len(tracked_records(gateway)) == 1

    def test_cache_write_failure_still_returns_response(self, issue_payload):
        cache = Mock(spec=InMemoryRequestCache)
        cache.get.return_value = (None, False)
        cache.set.side_effect = ConnectionError("cache backend down")
        gateway = make_gateway(StubProvider(ok_result(issue_payload)), cache=cache)

        response = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert response.payload == issue_payload
        cache.set.assert_called_once()
        assert tracked_records(gateway)[0].quality == 100

    def test_validator_failure_returns_none(self):
        validator = Mock()
        validator.validate.side_effect = RuntimeError("validator bug")
        gateway = RequestGateway(
            config=make_config(),
            provider=StubProvider(ok_result("{}")),
            cache=InMemoryRequestCache(),
            tracker=Mock(spec=UsageTracker),
            validator=validator,
        )

        assert gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS) is None
        assert len(gateway.cache) == 0

    def test_deeply_nested_response_is_scored_not_raised(self):
        provider = StubProvider(ok_result('{"a":' * 100000))
        gateway = make_gateway(provider)

        response = gateway.execute("issue_summary", ISSUE_FIELDS, expected_fields=ISSUE_SUMMARY_FIELDS)

        assert response.quality == 0
        assert len(gateway.cache) == 0
        assert tracked_records(gateway)[0].quality == 0
