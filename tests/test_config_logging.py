from __future__ import annotations

import logging

import pytest

from config.settings import CreditSettings, PipelineSettings
from llm import DEFAULT_MODELS, get_llm
from utils.exceptions import ConfigurationError, FetchError, ThresholdExceeded
from utils.logger import JobLoggerAdapter, get_job_logger


def test_pipeline_defaults() -> None:
    settings = PipelineSettings()

    assert settings.failure_threshold == 0.5
    assert settings.item_progress_weight == 70
    assert settings.synthesis_progress_start == 75


def test_settings_read_prefixed_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIPELINE_FAILURE_THRESHOLD", "0.25")
    monkeypatch.setenv("CREDITS_ITEMS_PER_ANNOTATION_CREDIT", "10")

    assert PipelineSettings().failure_threshold == 0.25
    assert CreditSettings().items_per_annotation_credit == 10


def test_job_logger_prefixes_job_id(caplog: pytest.LogCaptureFixture) -> None:
    base = logging.getLogger("tests.job_logger")
    log = get_job_logger("job_7", base)

    with caplog.at_level(logging.INFO, logger="tests.job_logger"):
        log.info("started items=%s", 3)

    assert isinstance(log, JobLoggerAdapter)
    assert caplog.records[-1].getMessage() == "[job job_7] started items=3"


def test_exception_messages() -> None:
    error = ThresholdExceeded(0.6, 0.5)
    assert error.message == "Failure threshold exceeded: 60% of selected items failed (threshold 50%)"

    fetch = FetchError("HTTP 404", item_id="v1", locator="https://x.test")
    assert fetch.item_id == "v1"
    assert "locator" in str(fetch)


def test_llm_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        get_llm(provider="mystery", api_key="k")
    assert set(DEFAULT_MODELS) == {"openai", "deepseek", "gemini"}
