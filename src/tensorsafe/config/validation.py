"""Configuration validation for tensorsafe.

This module provides validation utilities for configuration values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .schema import LogLevel, TensorsafeConfig

VALID_LEVELS = {level.value for level in LogLevel}
MIN_HEADER_SIZE = 2  # the smallest header, "{}"
LARGE_HEADER_SIZE = 1_000_000_000


@dataclass
class ValidationError:
    """Represents a configuration validation error."""

    key: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.key}: {self.message} (got: {self.value!r})"
        return f"{self.key}: {self.message}"


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    valid: bool
    errors: list[ValidationError]
    warnings: list[ValidationError]

    def __bool__(self) -> bool:
        return self.valid


def validate_config(config: TensorsafeConfig) -> ValidationResult:
    """Validate a configuration instance.

    Args:
        config: Configuration to validate

    Returns:
        ValidationResult with errors and warnings
    """
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    _validate_reader(config, errors, warnings)
    _validate_writer(config, errors, warnings)
    _validate_logging(config, errors, warnings)

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def _validate_reader(
    config: TensorsafeConfig,
    errors: list[ValidationError],
    warnings: list[ValidationError],
) -> None:
    reader = config.reader

    if not isinstance(reader.use_mmap, bool):
        errors.append(
            ValidationError("reader.use_mmap", "must be a boolean", reader.use_mmap)
        )

    size = reader.max_header_size
    if isinstance(size, bool) or not isinstance(size, int):
        errors.append(
            ValidationError("reader.max_header_size", "must be an integer", size)
        )
    elif size < MIN_HEADER_SIZE:
        errors.append(
            ValidationError(
                "reader.max_header_size",
                f"must be at least {MIN_HEADER_SIZE} bytes",
                size,
            )
        )
    elif size > LARGE_HEADER_SIZE:
        warnings.append(
            ValidationError(
                "reader.max_header_size",
                "very large headers can exhaust memory while decoding",
                size,
            )
        )


def _validate_writer(
    config: TensorsafeConfig,
    errors: list[ValidationError],
    warnings: list[ValidationError],
) -> None:
    if not isinstance(config.writer.atomic, bool):
        errors.append(
            ValidationError("writer.atomic", "must be a boolean", config.writer.atomic)
        )
    elif not config.writer.atomic:
        warnings.append(
            ValidationError(
                "writer.atomic",
                "non-atomic writes can leave partial files behind on failure",
            )
        )


def _validate_logging(
    config: TensorsafeConfig,
    errors: list[ValidationError],
    warnings: list[ValidationError],
) -> None:
    logging_cfg = config.logging

    if str(logging_cfg.level).upper() not in VALID_LEVELS:
        errors.append(
            ValidationError(
                "logging.level",
                f"must be one of {sorted(VALID_LEVELS)}",
                logging_cfg.level,
            )
        )

    if not logging_cfg.console and not logging_cfg.file:
        warnings.append(
            ValidationError(
                "logging.console",
                "console logging is off and no log file is set; logs are discarded",
            )
        )


def validate_value(key: str, value: Any) -> Optional[ValidationError]:
    """Validate a single configuration value.

    Args:
        key: Configuration key (dot notation)
        value: Value to validate

    Returns:
        ValidationError if invalid, None if valid
    """
    validators = {
        "reader.use_mmap": lambda v: (
            None if isinstance(v, bool) else ValidationError(key, "must be a boolean", v)
        ),
        "reader.max_header_size": lambda v: (
            None
            if isinstance(v, int)
            and not isinstance(v, bool)
            and v >= MIN_HEADER_SIZE
            else ValidationError(
                key, f"must be an integer of at least {MIN_HEADER_SIZE}", v
            )
        ),
        "writer.atomic": lambda v: (
            None if isinstance(v, bool) else ValidationError(key, "must be a boolean", v)
        ),
        "logging.level": lambda v: (
            None
            if str(v).upper() in VALID_LEVELS
            else ValidationError(key, "must be a valid log level", v)
        ),
    }

    if key in validators:
        return validators[key](value)

    return None
