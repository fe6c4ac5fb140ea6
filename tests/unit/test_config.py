# tests/unit/test_config.py
"""Unit tests for configuration schema and loader."""

import json
import logging
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from review_pipeline.config import Budget, RetryConfig, ReviewConfig, load_config
from review_pipeline.logging_config import JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def _clear_api_key_env(monkeypatch):
    monkeypatch.delenv("REVIEW_PIPELINE_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


class TestSchema:
    def test_defaults(self):
        config = ReviewConfig()

        assert config.budget.max_tokens == 4000
        assert config.budget.reserved_tokens == 500
        assert config.budget.available_tokens == 3500
        assert config.retry.max_retries == 3
        assert config.rate_limit.requests_per_minute == 60
        assert config.llm.api_key is None

    def test_reserved_must_be_below_max(self):
        with pytest.raises(ValidationError, match="reserved_tokens"):
            Budget(max_tokens=1000, reserved_tokens=1000)

    def test_budget_is_frozen(self):
        budget = Budget()
        with pytest.raises(ValidationError):
            budget.max_tokens = 10

    def test_backoff_multiplier_at_least_one(self):
        with pytest.raises(ValidationError):
            RetryConfig(backoff_multiplier=0.5)

    def test_unknown_keys_ignored(self):
        config = ReviewConfig(**{"llm": {"model": "m", "organisation": "x"}, "plugins": []})
        assert config.llm.model == "m"


class TestLoadConfig:
    def test_explicit_path(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "llm": {"model": "gpt-4o", "api_key": "file-key"},
                    "budget": {"max_tokens": 8000, "reserved_tokens": 1000},
                    "optimizer": {"exclude_patterns": ["vendor/"]},
                }
            )
        )

        config = load_config(path)

        assert config.llm.model == "gpt-4o"
        assert config.llm.api_key == "file-key"
        assert config.budget.available_tokens == 7000
        assert config.optimizer.exclude_patterns == ["vendor/"]

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path) == ReviewConfig()

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"budget": {"max_tokens": 100, "reserved_tokens": 200}}))

        with pytest.raises(ValidationError):
            load_config(path)

    def test_creates_default_file(self, tmp_path):
        path = tmp_path / "review-pipeline" / "config.yaml"
        path.parent.mkdir()

        with patch("review_pipeline.config.loader.get_config_path", return_value=path):
            config = load_config()

        assert path.exists()
        assert config == ReviewConfig()
        assert yaml.safe_load(path.read_text())["budget"]["max_tokens"] == 4000

    def test_api_key_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"llm": {"model": "gpt-4"}}))
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")

        assert load_config(path).llm.api_key == "env-key"

    def test_project_env_var_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("{}")
        monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
        monkeypatch.setenv("REVIEW_PIPELINE_API_KEY", "project-key")

        assert load_config(path).llm.api_key == "project-key"

    def test_file_key_beats_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"llm": {"api_key": "file-key"}}))
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")

        assert load_config(path).llm.api_key == "file-key"


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord(
            name="review_pipeline.llm.client",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Request attempt %d failed",
            args=(2,),
            exc_info=None,
        )
        record.attempt = 2

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "review_pipeline.llm.client"
        assert data["msg"] == "Request attempt 2 failed"
        assert data["attempt"] == 2
        assert "ts" in data

    def test_configure_logging_uses_single_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("DEBUG", json_output=False)
            configure_logging("WARNING", json_output=True)

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.WARNING
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
