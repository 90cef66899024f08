"""
Exception hierarchy for the migration engine.

Per-record and per-batch failures are recovered locally and folded into run
counters; only ConfigError (and unexpected faults) end a run early.
"""


class MigrationError(Exception):
    """Base class for all migration engine errors."""
    pass


class ConfigError(MigrationError):
    """Raised when required run configuration is missing or invalid."""
    pass


class UnknownNameError(ConfigError):
    """Raised when a registry lookup names something that was never registered."""

    def __init__(self, kind: str, name: str, available: list[str]):
        self.kind = kind
        self.name = name
        self.available = available
        listing = ", ".join(available) or "none"
        super().__init__(f'Unknown {kind} "{name}". Available: {listing}')


class ExtractionError(MigrationError):
    """Raised when streaming a source file fails part-way through."""

    def __init__(self, file_key: str, message: str):
        self.file_key = file_key
        self.message = message
        super().__init__(f"Failed to read {file_key}: {message}")
