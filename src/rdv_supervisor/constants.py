"""Stable constants for the rdv tool-container contract."""

from __future__ import annotations

from typing import Final

# Attestation schema version written into every record.
SPEC_VERSION: Final[str] = "0.1"

# Environment bindings consumed by the supervisor.
ENV_WORKSPACE: Final[str] = "TOOL_WORKSPACE"
ENV_OUTPUT: Final[str] = "TOOL_OUTPUT"
ENV_TRUST_LEVEL: Final[str] = "TOOL_TRUST_LEVEL"
ENV_INVOCATION_ID: Final[str] = "TOOL_INVOCATION_ID"
ENV_CACHE: Final[str] = "TOOL_CACHE"
ENV_CONFIG: Final[str] = "TOOL_CONFIG"

REQUIRED_BINDINGS: Final[tuple[tuple[str, str], ...]] = (
    (ENV_WORKSPACE, "workspace mount"),
    (ENV_OUTPUT, "output mount"),
    (ENV_TRUST_LEVEL, "trust level"),
    (ENV_INVOCATION_ID, "invocation ID"),
)
MOUNT_BINDINGS: Final[tuple[tuple[str, str], ...]] = (
    (ENV_WORKSPACE, "workspace"),
    (ENV_OUTPUT, "output"),
)

# Reserved file names inside the output mount.
ATTESTATION_FILENAME: Final[str] = ".attestation.json"
PROBE_FILENAME: Final[str] = ".rdv-write-test"

# Self-description manifest baked into each tool image.
DEFAULT_MANIFEST_PATH: Final[str] = "/tool-manifest.json"
UNKNOWN: Final[str] = "unknown"

# Ordered entry-point candidates; the first existing file wins.
DEFAULT_TOOL_CANDIDATES: Final[tuple[str, ...]] = (
    "/tool",
    "/tool.bin",
    "/tool.sh",
    "/tool.py",
    "/tool.js",
)

DEFAULT_BUILDER_PREFIX: Final[str] = "rdv"

# Exit-code policy.
CONTRACT_VIOLATION_EXIT_CODE: Final[int] = 2
SPAWN_FAILED_EXIT_CODE: Final[int] = 1
SIGNAL_EXIT_CODE_BASE: Final[int] = 128

__all__ = [
    "ATTESTATION_FILENAME",
    "CONTRACT_VIOLATION_EXIT_CODE",
    "DEFAULT_BUILDER_PREFIX",
    "DEFAULT_MANIFEST_PATH",
    "DEFAULT_TOOL_CANDIDATES",
    "ENV_CACHE",
    "ENV_CONFIG",
    "ENV_INVOCATION_ID",
    "ENV_OUTPUT",
    "ENV_TRUST_LEVEL",
    "ENV_WORKSPACE",
    "MOUNT_BINDINGS",
    "PROBE_FILENAME",
    "REQUIRED_BINDINGS",
    "SIGNAL_EXIT_CODE_BASE",
    "SPAWN_FAILED_EXIT_CODE",
    "SPEC_VERSION",
    "UNKNOWN",
]
