"""Immutable invocation context: tool identity, trust level, and mount bindings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from rdv_supervisor.constants import ENV_INVOCATION_ID, UNKNOWN

if TYPE_CHECKING:
    from collections.abc import Mapping


class TrustLevel(str, Enum):
    """Coarse classification of the execution environment; informational only."""

    LOCAL = "local"
    ATTESTED = "attested"
    HARDENED = "hardened"

    @classmethod
    def parse(cls, value: str) -> TrustLevel:
        normalized = value.strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(item.value for item in cls)
            raise ValueError(
                f"unsupported trust level {value!r}; expected one of: {allowed}"
            ) from exc


@dataclass(frozen=True, slots=True)
class ToolIdentity:
    """Name and version of the wrapped tool, from its self-description manifest."""

    name: str = UNKNOWN
    version: str = UNKNOWN


@dataclass(frozen=True, slots=True)
class InvocationContext:
    """Everything the supervisor knows about one invocation; never mutated."""

    tool: ToolIdentity
    invocation_id: str
    trust_level: TrustLevel
    workspace: Path
    output: Path
    cache: Path | None = None
    config: Path | None = None

    def builder_id(self, prefix: str) -> str:
        return f"{prefix}-{self.trust_level.value}"


def load_tool_identity(manifest_path: str | Path) -> ToolIdentity:
    """
    Read ``{"name": ..., "version": ...}`` from the tool manifest.

    A missing, unreadable, or malformed manifest is never fatal: each field that
    cannot be read as a non-empty string falls back to ``"unknown"``.
    """

    try:
        raw = Path(manifest_path).read_text(encoding="utf-8")
        payload = json.loads(raw)
    except (OSError, UnicodeDecodeError, RecursionError, json.JSONDecodeError):
        return ToolIdentity()

    if not isinstance(payload, dict):
        return ToolIdentity()
    return ToolIdentity(
        name=_manifest_string(payload, "name"),
        version=_manifest_string(payload, "version"),
    )


def provisional_invocation_id(environ: Mapping[str, str]) -> str:
    """Invocation id used for log lines emitted before the contract is validated."""

    value = environ.get(ENV_INVOCATION_ID, "").strip()
    return value or UNKNOWN


def _manifest_string(payload: Mapping[str, object], key: str) -> str:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return UNKNOWN


__all__ = [
    "InvocationContext",
    "ToolIdentity",
    "TrustLevel",
    "load_tool_identity",
    "provisional_invocation_id",
]
