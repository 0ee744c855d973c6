"""Configuration loading for the track model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from configs.validator import validate_config
from exceptions import InvalidConfigError
from log_config.logger import configure_file_logging, get_logger, set_console_level

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default.yaml")


class GlobalTrackInput(Enum):
    """Which tracks GLOBAL track analyzers receive at flush time."""

    FILTERED = "filtered"  # Every visible track
    UPDATED = "updated"  # Only the tracks flagged for update


class AnalyzerFailurePolicy(Enum):
    """What end_update() does after an analyzer raised."""

    RAISE = "raise"
    LOG = "log"


@dataclass(frozen=True)
class ModelConfig:
    space_units: str = "pixels"
    time_units: str = "frames"
    initial_quality_threshold: Optional[float] = None
    global_track_input: GlobalTrackInput = GlobalTrackInput.FILTERED
    analyzer_failure_policy: AnalyzerFailurePolicy = AnalyzerFailurePolicy.RAISE


@dataclass(frozen=True)
class FeatureConfig:
    edge_analyzers: Tuple[str, ...] = ("edge_length", "edge_time", "edge_velocity")
    track_analyzers: Tuple[str, ...] = ("track_branching", "track_duration", "track_total_length")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    log_dir: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    model: ModelConfig = field(default_factory=ModelConfig)
    features: FeatureConfig = field(default_factory=FeatureConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to configuration file; the bundled default.yaml if omitted

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        logger.info(f"Loading configuration from {path}")
        if not path.exists():
            raise InvalidConfigError(f"Configuration file not found: {path}")

        data = yaml.safe_load(path.read_text())

    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}")

    return config_from_dict(data)


def config_from_dict(data: Any) -> AppConfig:
    """Validate a raw configuration mapping and build an AppConfig.

    Raises:
        ConfigValidationError: If the mapping does not match the schema
        InvalidConfigError: If values cannot be converted
    """
    # Validate against JSON Schema (fills in defaults)
    validate_config(data)

    try:
        model_data: Dict[str, Any] = data["model"]
        model = ModelConfig(
            space_units=model_data["space_units"],
            time_units=model_data["time_units"],
            initial_quality_threshold=model_data["initial_quality_threshold"],
            global_track_input=GlobalTrackInput(model_data["global_track_input"]),
            analyzer_failure_policy=AnalyzerFailurePolicy(model_data["analyzer_failure_policy"]),
        )

        features_data = data.get("features") or {}
        defaults = FeatureConfig()
        features = FeatureConfig(
            edge_analyzers=tuple(features_data.get("edge_analyzers", defaults.edge_analyzers)),
            track_analyzers=tuple(features_data.get("track_analyzers", defaults.track_analyzers)),
        )

        logging_data = data.get("logging") or {}
        logging_config = LoggingConfig(
            level=logging_data.get("level", "INFO"),
            log_dir=logging_data.get("log_dir"),
        )

    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Failed to construct configuration objects: {e}")
        raise InvalidConfigError(f"Failed to construct configuration: {e}")

    config = AppConfig(model=model, features=features, logging=logging_config)
    logger.debug(
        f"Configuration loaded: {len(features.edge_analyzers)} edge / "
        f"{len(features.track_analyzers)} track analyzers, "
        f"global track input={model.global_track_input.value}"
    )
    return config


def apply_logging_config(config: LoggingConfig) -> None:
    """Set the console log level and, if configured, add file logging."""
    set_console_level(config.level)
    if config.log_dir:
        logs_dir = configure_file_logging(config.log_dir)
        logger.info(f"Writing logs to {logs_dir}")
