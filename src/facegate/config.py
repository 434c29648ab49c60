"""
Configuration management for the FaceGate engine.

This module loads configuration from environment variables and ``.env``
files. All settings are collected into an immutable ``EngineConfig`` so that
one recognition attempt always sees a consistent set of thresholds.
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from .constants import (
    CACHE_VALIDITY_SECONDS,
    DEFAULT_DEVICE_ID,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_VOTE_FRACTION,
    DUPLICATE_WINDOW_SECONDS,
    MAX_SAMPLES_PER_IDENTITY,
    MIN_DIVERSITY_THRESHOLD,
    MIN_OVERALL_QUALITY,
    OPTIMAL_DIVERSITY,
)
from .data_models import MatchStrategy
from .exceptions import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration for the matching and enrollment engine.

    Matching:
        similarity_threshold: minimum cosine similarity for a match, in [0, 1]
        match_strategy: how an identity's samples are combined into one score
        vote_fraction: share of samples that must clear the threshold (VOTING)

    Enrollment:
        min_quality: minimum overall quality score (0-100) for a capture
        min_diversity: minimum 1 - max similarity against existing samples
        optimal_diversity: diversity at which the diversity score saturates
        max_samples_per_identity: soft cap on stored samples per identity

    Runtime:
        cache_validity_seconds: lifetime of a decrypted template snapshot
        duplicate_window_seconds: cooldown between two accepted matches of
            the same identity (0 disables suppression)
        device_id: identifier written into every audit record
        audit_log_path: JSON Lines audit log, or None for in-memory only
        log_level: structlog / logging level name
        structured_logging: render JSON logs instead of console output
    """

    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    match_strategy: MatchStrategy = MatchStrategy.WEIGHTED_AVERAGE
    vote_fraction: float = DEFAULT_VOTE_FRACTION
    min_quality: float = MIN_OVERALL_QUALITY
    min_diversity: float = MIN_DIVERSITY_THRESHOLD
    optimal_diversity: float = OPTIMAL_DIVERSITY
    max_samples_per_identity: int = MAX_SAMPLES_PER_IDENTITY
    cache_validity_seconds: float = CACHE_VALIDITY_SECONDS
    duplicate_window_seconds: float = DUPLICATE_WINDOW_SECONDS
    device_id: str = DEFAULT_DEVICE_ID
    audit_log_path: Optional[Path] = None
    log_level: str = "INFO"
    structured_logging: bool = True


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number", config_key=name, config_value=raw
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer", config_key=name, config_value=raw
        )


def _env_strategy(name: str, default: MatchStrategy) -> MatchStrategy:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return MatchStrategy.from_name(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be one of {[s.name for s in MatchStrategy]}",
            config_key=name,
            config_value=raw,
        )


def load_config(validate: bool = True) -> EngineConfig:
    """
    Load configuration from environment variables.

    Parameters
    ----------
    validate : bool, default=True
        Whether to run ``validate_configuration`` on the result.

    Returns
    -------
    EngineConfig
        Immutable configuration object.

    Raises
    ------
    ConfigurationError
        If a variable cannot be parsed or a value is out of range.
    """
    audit_path = os.getenv("FACEGATE_AUDIT_LOG_PATH")

    config = EngineConfig(
        # Matching
        similarity_threshold=_env_float(
            "FACEGATE_SIMILARITY_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD
        ),
        match_strategy=_env_strategy(
            "FACEGATE_MATCH_STRATEGY", MatchStrategy.WEIGHTED_AVERAGE
        ),
        vote_fraction=_env_float("FACEGATE_VOTE_FRACTION", DEFAULT_VOTE_FRACTION),
        # Enrollment
        min_quality=_env_float("FACEGATE_MIN_QUALITY", MIN_OVERALL_QUALITY),
        min_diversity=_env_float("FACEGATE_MIN_DIVERSITY", MIN_DIVERSITY_THRESHOLD),
        optimal_diversity=_env_float("FACEGATE_OPTIMAL_DIVERSITY", OPTIMAL_DIVERSITY),
        max_samples_per_identity=_env_int(
            "FACEGATE_MAX_SAMPLES_PER_IDENTITY", MAX_SAMPLES_PER_IDENTITY
        ),
        # Runtime
        cache_validity_seconds=_env_float(
            "FACEGATE_CACHE_VALIDITY_SECONDS", CACHE_VALIDITY_SECONDS
        ),
        duplicate_window_seconds=_env_float(
            "FACEGATE_DUPLICATE_WINDOW_SECONDS", DUPLICATE_WINDOW_SECONDS
        ),
        device_id=os.getenv("FACEGATE_DEVICE_ID", DEFAULT_DEVICE_ID),
        audit_log_path=Path(audit_path) if audit_path else None,
        log_level=os.getenv("FACEGATE_LOG_LEVEL", "INFO").upper(),
        structured_logging=_env_bool("FACEGATE_STRUCTURED_LOGGING", "true"),
    )

    if validate:
        validate_configuration(config)

    return config


def validate_configuration(config: EngineConfig) -> bool:
    """
    Validate configuration settings.

    Parameters
    ----------
    config : EngineConfig
        Configuration to check.

    Returns
    -------
    bool
        True if the configuration is valid.

    Raises
    ------
    ConfigurationError
        Listing every invalid parameter found.
    """
    errors = []

    if not 0.0 <= config.similarity_threshold <= 1.0:
        errors.append("similarity_threshold must be between 0 and 1")

    if not 0.0 <= config.vote_fraction <= 1.0:
        errors.append("vote_fraction must be between 0 and 1")

    if not 0.0 <= config.min_quality <= 100.0:
        errors.append("min_quality must be between 0 and 100")

    if not 0.0 <= config.min_diversity < config.optimal_diversity <= 1.0:
        errors.append("diversity thresholds must satisfy 0 <= min < optimal <= 1")

    if config.max_samples_per_identity < 1:
        errors.append("max_samples_per_identity must be at least 1")

    if config.cache_validity_seconds <= 0:
        errors.append("cache_validity_seconds must be positive")

    if config.duplicate_window_seconds < 0:
        errors.append("duplicate_window_seconds cannot be negative")

    if not config.device_id:
        errors.append("device_id cannot be empty")

    if config.log_level not in VALID_LOG_LEVELS:
        errors.append(f"log_level must be one of {list(VALID_LOG_LEVELS)}")

    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n"
            + "\n".join(f"- {error}" for error in errors),
            context={"error_count": len(errors)},
        )

    return True


def get_config_summary(config: EngineConfig) -> dict:
    """
    Get a summary of the configuration suitable for logging or display.

    Parameters
    ----------
    config : EngineConfig
        Configuration to summarise.

    Returns
    -------
    dict
        Configuration grouped by concern, with JSON-friendly values.
    """
    values = asdict(config)
    return {
        "matching": {
            "similarity_threshold": values["similarity_threshold"],
            "match_strategy": config.match_strategy.name,
            "vote_fraction": values["vote_fraction"],
        },
        "enrollment": {
            "min_quality": values["min_quality"],
            "min_diversity": values["min_diversity"],
            "optimal_diversity": values["optimal_diversity"],
            "max_samples_per_identity": values["max_samples_per_identity"],
        },
        "runtime": {
            "cache_validity_seconds": values["cache_validity_seconds"],
            "duplicate_window_seconds": values["duplicate_window_seconds"],
            "device_id": values["device_id"],
            "audit_log_path": (
                str(config.audit_log_path) if config.audit_log_path else None
            ),
        },
        "logging": {
            "level": values["log_level"],
            "structured": values["structured_logging"],
        },
    }
