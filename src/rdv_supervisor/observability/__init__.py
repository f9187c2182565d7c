"""Public observability primitives: invocation-bound structured logging."""

from rdv_supervisor.observability.logging import (
    LoggingConfig,
    Severity,
    StructuredLogger,
    parse_severity,
    setup_structured_logging,
)

__all__ = [
    "LoggingConfig",
    "Severity",
    "StructuredLogger",
    "parse_severity",
    "setup_structured_logging",
]
