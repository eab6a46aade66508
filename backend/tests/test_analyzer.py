import asyncio
import json
import time

import pytest
from loguru import logger

from backend.analyzer import ANALYSIS_FAILED, CONFIGURATION_ERROR, SalaryAnalyzer
from backend.config import settings
from backend.exceptions import (
    ConfigurationError,
    ResponseParseError,
    TransientAnalysisError,
)
from backend.llm_client import ClientHandle
from backend.models import ExperienceLevel, MarketDemandLevel, SalaryAnalysis

from .conftest import VALID_ANALYSIS, StubClient

PAYLOAD = "data:application/pdf;base64,JVBERi0xLjQ="


def _analyze(client, **kwargs):
    kwargs.setdefault("retry_delay_ms", 0)
    analyzer = SalaryAnalyzer(ClientHandle.of(client))
    return asyncio.run(analyzer.analyze(PAYLOAD, **kwargs))


def _assert_fallback(result, error, error_code):
    assert result.error == error
    assert result.error_code == error_code
    assert result.estimated_salary == 0
    assert result.confidence_score == 0
    assert result.experience.years == 0
    assert result.experience.level == ExperienceLevel.JUNIOR
    assert result.market_demand.level == MarketDemandLevel.MEDIUM
    assert result.experience.key_skills == []
    assert result.market_demand.reasons == []
    assert result.salary_factors == []
    assert result.considerations == []


class TestSuccess:
    def test_structured_output_is_returned(self):
        client = StubClient([VALID_ANALYSIS], supports_schema=True)

        result = _analyze(client)

        assert result.error is None
        assert result.estimated_salary == 52000
        assert result.experience.level == ExperienceLevel.MID_LEVEL
        assert result.market_demand.level == MarketDemandLevel.HIGH
        assert result.currency == "SEK"
        assert result.salary_timeframe == "monthly"
        assert len(client.calls) == 1

    def test_schema_client_receives_schema_not_schema_text(self):
        client = StubClient([VALID_ANALYSIS], supports_schema=True)

        _analyze(client)

        call = client.calls[0]
        assert call["media_url"] == PAYLOAD
        assert call["schema"]["type"] == "object"
        assert "estimatedSalary" in call["schema"]["required"]
        assert "Swedish" in call["prompt"]
        assert "JSON Schema:" not in call["prompt"]

    def test_text_client_gets_schema_in_prompt(self):
        client = StubClient([json.dumps(VALID_ANALYSIS)])

        _analyze(client)

        call = client.calls[0]
        assert call["schema"] is None
        assert "JSON Schema:" in call["prompt"]
        assert '"confidenceScore"' in call["prompt"]

    def test_fenced_json_equals_parsed_object(self):
        client = StubClient(["```json\n" + json.dumps(VALID_ANALYSIS) + "\n```"])

        result = _analyze(client)

        expected = SalaryAnalysis.model_validate(VALID_ANALYSIS)
        assert SalaryAnalysis.model_validate(result.model_dump()) == expected
        assert result.error is None


class TestRetries:
    @pytest.mark.parametrize("failures,budget", [(1, 3), (2, 3), (3, 5), (1, 1)])
    def test_recovers_within_budget(self, failures, budget):
        outcomes = [TransientAnalysisError("unavailable", status_code=503)] * failures + [VALID_ANALYSIS]
        client = StubClient(outcomes, supports_schema=True)

        result = _analyze(client, max_retries=budget)

        assert result.error is None
        assert result.estimated_salary == 52000
        assert len(client.calls) == failures + 1

    @pytest.mark.parametrize("failures,budget", [(3, 3), (5, 3), (1, 0), (4, 2)])
    def test_falls_back_when_budget_spent(self, failures, budget):
        outcomes = [TransientAnalysisError("network down")] * failures + [VALID_ANALYSIS]
        client = StubClient(outcomes, supports_schema=True)

        result = _analyze(client, max_retries=budget)

        _assert_fallback(result, ANALYSIS_FAILED, "analysis_failed")
        assert len(client.calls) == budget + 1

    def test_invalid_json_every_time_gives_empty_fallback(self):
        client = StubClient(["this is not json {"])

        result = _analyze(client, max_retries=2)

        _assert_fallback(result, ANALYSIS_FAILED, "analysis_failed")
        assert result.error
        assert len(client.calls) == 3

    def test_schema_violation_is_retried(self):
        invalid = dict(VALID_ANALYSIS, experience={"level": "Expert", "years": 3, "keySkills": []})
        client = StubClient([invalid, VALID_ANALYSIS], supports_schema=True)

        result = _analyze(client)

        assert result.error is None
        assert len(client.calls) == 2

    def test_parse_error_from_client_is_retried(self):
        client = StubClient([ResponseParseError("bad json"), VALID_ANALYSIS], supports_schema=True)

        result = _analyze(client)

        assert result.error is None
        assert len(client.calls) == 2

    def test_constant_delay_between_attempts(self):
        client = StubClient([TransientAnalysisError("down")], supports_schema=True)

        start = time.monotonic()
        result = _analyze(client, max_retries=2, retry_delay_ms=100)
        elapsed = time.monotonic() - start

        assert result.error_code == "analysis_failed"
        assert len(client.calls) == 3
        assert elapsed >= 0.2

    def test_success_does_not_sleep(self):
        client = StubClient([VALID_ANALYSIS], supports_schema=True)

        start = time.monotonic()
        _analyze(client, retry_delay_ms=5000)

        assert time.monotonic() - start < 1

    def test_limits_default_to_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "max_retries", 1)
        monkeypatch.setattr(settings, "retry_delay_ms", 0)
        client = StubClient([TransientAnalysisError("down")], supports_schema=True)
        analyzer = SalaryAnalyzer(ClientHandle.of(client))

        result = asyncio.run(analyzer.analyze(PAYLOAD))

        assert result.error_code == "analysis_failed"
        assert len(client.calls) == 2

    def test_service_status_is_logged(self):
        messages = []
        handler_id = logger.add(messages.append, level="ERROR", format="{message}")
        try:
            client = StubClient(
                [TransientAnalysisError("unavailable", status_code=503), TransientAnalysisError("timed out")],
                supports_schema=True
            )
            _analyze(client, max_retries=1)
        finally:
            logger.remove(handler_id)

        assert any("Attempt 1 failed (service status 503)" in m for m in messages)
        assert any("Attempt 2 failed: timed out" in m for m in messages)


class TestConfigurationErrors:
    def test_configuration_error_is_not_retried(self):
        client = StubClient([ConfigurationError("invalid API key"), VALID_ANALYSIS], supports_schema=True)

        result = _analyze(client, max_retries=3)

        _assert_fallback(result, CONFIGURATION_ERROR, "configuration")
        assert len(client.calls) == 1

    def test_configuration_error_after_transient_failure(self):
        client = StubClient([TransientAnalysisError("down"), ConfigurationError("revoked")], supports_schema=True)

        result = _analyze(client, max_retries=3)

        assert result.error_code == "configuration"
        assert len(client.calls) == 2

    def test_missing_credential_skips_the_call(self):
        def factory():
            raise ConfigurationError("GOOGLE_API_KEY is not set")

        analyzer = SalaryAnalyzer(ClientHandle(factory))
        result = asyncio.run(analyzer.analyze(PAYLOAD, retry_delay_ms=0))

        _assert_fallback(result, CONFIGURATION_ERROR, "configuration")

    def test_credential_is_not_leaked(self):
        client = StubClient([ConfigurationError("API key AIza-secret-key rejected")], supports_schema=True)

        result = _analyze(client)

        assert "AIza" not in result.error


def test_unexpected_errors_propagate():
    client = StubClient([RuntimeError("bug")], supports_schema=True)

    with pytest.raises(RuntimeError):
        _analyze(client)
    assert len(client.calls) == 1


def test_cancellation_abandons_pending_retry():
    client = StubClient([TransientAnalysisError("down")], supports_schema=True)
    analyzer = SalaryAnalyzer(ClientHandle.of(client))

    async def run():
        task = asyncio.create_task(analyzer.analyze(PAYLOAD, retry_delay_ms=60_000))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    start = time.monotonic()
    asyncio.run(run())

    assert time.monotonic() - start < 5
    assert len(client.calls) == 1
