"""JSON Schema for the model configuration, with default filling."""

from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft7Validator, validators

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

_ANALYZER_LIST = {
    "type": "array",
    "items": {"type": "string", "minLength": 1},
    "uniqueItems": True,
}

# Schema for default.yaml and user overrides
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["model"],
    "properties": {
        "model": {
            "type": "object",
            "properties": {
                "space_units": {"type": "string", "minLength": 1, "default": "pixels"},
                "time_units": {"type": "string", "minLength": 1, "default": "frames"},
                "initial_quality_threshold": {"type": ["number", "null"], "default": None},
                "global_track_input": {
                    "type": "string",
                    "enum": ["filtered", "updated"],
                    "default": "filtered",
                },
                "analyzer_failure_policy": {
                    "type": "string",
                    "enum": ["raise", "log"],
                    "default": "raise",
                },
            },
            "additionalProperties": False,
        },
        "features": {
            "type": "object",
            "properties": {
                "edge_analyzers": _ANALYZER_LIST,
                "track_analyzers": _ANALYZER_LIST,
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
                    "default": "INFO",
                },
                "log_dir": {"type": ["string", "null"], "default": None},
            },
            "additionalProperties": False,
        },
    },
}


def extend_with_default(validator_class):
    """Extend JSON Schema validator to set default values."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(prop, subschema["default"])

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultValidatingValidator = extend_with_default(Draft7Validator)

Draft7Validator.check_schema(CONFIG_SCHEMA)
_validator = DefaultValidatingValidator(CONFIG_SCHEMA)


def validate_config(config: Dict[str, Any]) -> None:
    """Check a raw configuration mapping, filling in defaults in place.

    Raises:
        ConfigValidationError: Listing every violation, not only the first
    """
    errors = sorted(_validator.iter_errors(config), key=lambda e: e.json_path)
    if not errors:
        logger.debug("Configuration matches schema")
        return

    messages = [f"{error.json_path}: {error.message}" for error in errors]
    for message in messages:
        logger.error(f"Invalid configuration value {message}")
    raise ConfigValidationError(
        f"Configuration has {len(messages)} schema violation(s): {'; '.join(messages)}",
        validation_errors=messages,
    )


__all__ = ["CONFIG_SCHEMA", "DefaultValidatingValidator", "validate_config"]
