"""Unit tests for environment-driven configuration."""

from pathlib import Path

import pytest

from facegate.config import (
    EngineConfig,
    get_config_summary,
    load_config,
    validate_configuration,
)
from facegate.data_models import MatchStrategy
from facegate.exceptions import ConfigurationError


def test_defaults() -> None:
    config = load_config()

    assert config.similarity_threshold == 0.72
    assert config.match_strategy is MatchStrategy.WEIGHTED_AVERAGE
    assert config.vote_fraction == 0.5
    assert config.min_quality == 60.0
    assert config.cache_validity_seconds == 300.0
    assert config.duplicate_window_seconds == 30.0
    assert config.device_id == "UNKNOWN_DEVICE"
    assert config.audit_log_path is None


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("FACEGATE_SIMILARITY_THRESHOLD", "0.8")
    monkeypatch.setenv("FACEGATE_MATCH_STRATEGY", "voting")
    monkeypatch.setenv("FACEGATE_DEVICE_ID", "gate-7")
    monkeypatch.setenv("FACEGATE_AUDIT_LOG_PATH", "/var/log/facegate/audit.jsonl")
    monkeypatch.setenv("FACEGATE_STRUCTURED_LOGGING", "false")
    monkeypatch.setenv("FACEGATE_LOG_LEVEL", "debug")

    config = load_config()

    assert config.similarity_threshold == 0.8
    assert config.match_strategy is MatchStrategy.VOTING
    assert config.device_id == "gate-7"
    assert config.audit_log_path == Path("/var/log/facegate/audit.jsonl")
    assert not config.structured_logging
    assert config.log_level == "DEBUG"


def test_unparseable_value_raises(monkeypatch) -> None:
    monkeypatch.setenv("FACEGATE_VOTE_FRACTION", "half")

    with pytest.raises(ConfigurationError) as excinfo:
        load_config()

    assert excinfo.value.error_code == "CONFIG_001"
    assert excinfo.value.context["config_key"] == "FACEGATE_VOTE_FRACTION"


def test_unknown_strategy_raises(monkeypatch) -> None:
    monkeypatch.setenv("FACEGATE_MATCH_STRATEGY", "majority")

    with pytest.raises(ConfigurationError):
        load_config()


def test_validation_reports_every_problem() -> None:
    config = EngineConfig(
        similarity_threshold=1.5,
        min_diversity=0.3,
        optimal_diversity=0.2,
        cache_validity_seconds=0.0,
    )

    with pytest.raises(ConfigurationError) as excinfo:
        validate_configuration(config)

    assert excinfo.value.context["error_count"] == 3
    assert "similarity_threshold" in excinfo.value.message


def test_validation_can_be_skipped(monkeypatch) -> None:
    monkeypatch.setenv("FACEGATE_SIMILARITY_THRESHOLD", "2.0")

    assert load_config(validate=False).similarity_threshold == 2.0


def test_config_summary_groups_settings() -> None:
    summary = get_config_summary(EngineConfig(audit_log_path=Path("audit.jsonl")))

    assert set(summary) == {"matching", "enrollment", "runtime", "logging"}
    assert summary["matching"]["match_strategy"] == "WEIGHTED_AVERAGE"
    assert summary["runtime"]["audit_log_path"] == "audit.jsonl"
