"""
Input validation utilities for the migration engine.

Run identifiers end up in file names (bookmark, pid and log files), so they
are restricted to a safe character set before use.
"""

import re

from dynamo_migrate.core.errors import ConfigError

RUN_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.]+$")
MAX_RUN_ID_LENGTH = 128


def validate_run_id(run_id: str, field_name: str = "profile") -> str:
    """
    Validate a run identifier (profile name).

    Args:
        run_id: The identifier to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated identifier (stripped of whitespace)

    Raises:
        ConfigError: If validation fails

    Examples:
        >>> validate_run_id("pictures")
        'pictures'
        >>> validate_run_id("../etc")  # doctest: +SKIP
        ConfigError: profile contains invalid characters
    """
    if not run_id or not isinstance(run_id, str):
        raise ConfigError(f"{field_name} must be a non-empty string")

    run_id = run_id.strip()

    if not run_id:
        raise ConfigError(f"{field_name} cannot be empty or whitespace-only")

    if not RUN_ID_PATTERN.match(run_id) or run_id.startswith("."):
        raise ConfigError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed."
        )

    if len(run_id) > MAX_RUN_ID_LENGTH:
        raise ConfigError(f"{field_name} exceeds maximum length of {MAX_RUN_ID_LENGTH} characters")

    return run_id


def parse_optional_int(raw: str | None, field_name: str) -> int | None:
    """
    Parse an optional integer option.

    Returns:
        The integer, or None when the option is unset or blank

    Raises:
        ConfigError: If the value is not an integer
    """
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return int(str(raw).strip(), 10)
    except ValueError as e:
        raise ConfigError(f"{field_name} must be an integer, got {raw!r}") from e


def parse_bool(raw: str | None, default: bool) -> bool:
    """Parse a boolean environment flag; anything but false/0/no/off is true."""
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")
