"""
rdv-supervisor — attestation record construction and persistence

File: src/rdv_supervisor/sandbox/attestation.py

Purpose
- Assemble the invocation context, materials fingerprint, product map, exit code,
  and timestamps into one immutable attestation record.
- Serialize it deterministically and write it atomically into the output mount.

Record layout
- `spec_version`, `invocation_id`
- `tool {name, version}`, `builder {id, trust_level}`
- `materials {workspace}`, `products {<relative path>: {sha256, path}}`
- `exit_code`, `started_at`, `finished_at`, `signature` (always null)

Functional requirements
- A failed write is a contract violation even if the tool itself succeeded.
- Concurrent invocations sharing one output directory are outside the contract.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from rdv_supervisor.constants import ENV_OUTPUT, SPEC_VERSION
from rdv_supervisor.sandbox.contract import ContractViolation, ContractViolationError
from rdv_supervisor.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from rdv_supervisor.context import InvocationContext
    from rdv_supervisor.sandbox.products import ProductRecord


class AttestationWriteError(ContractViolationError):
    """Raised when the attestation cannot be serialized or persisted."""


@dataclass(frozen=True, slots=True)
class AttestationRecord:
    """Immutable attestation for one tool invocation."""

    invocation_id: str
    tool_name: str
    tool_version: str
    builder_id: str
    trust_level: str
    workspace_fingerprint: str
    products: Mapping[str, ProductRecord]
    exit_code: int
    started_at: datetime
    finished_at: datetime
    spec_version: str = SPEC_VERSION
    signature: None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.finished_at < self.started_at:
            raise ValueError("finished_at must not precede started_at")
        frozen = MappingProxyType(dict(sorted(self.products.items(), key=lambda item: item[0])))
        object.__setattr__(self, "products", frozen)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec_version": self.spec_version,
            "invocation_id": self.invocation_id,
            "tool": {"name": self.tool_name, "version": self.tool_version},
            "builder": {"id": self.builder_id, "trust_level": self.trust_level},
            "materials": {"workspace": self.workspace_fingerprint},
            "products": {rel: record.to_dict() for rel, record in self.products.items()},
            "exit_code": self.exit_code,
            "started_at": _iso8601z(self.started_at),
            "finished_at": _iso8601z(self.finished_at),
            "signature": self.signature,
        }


def build_attestation(
    context: InvocationContext,
    *,
    workspace_fingerprint: str,
    products: Mapping[str, ProductRecord],
    exit_code: int,
    started_at: datetime,
    finished_at: datetime,
    builder_prefix: str,
) -> AttestationRecord:
    return AttestationRecord(
        invocation_id=context.invocation_id,
        tool_name=context.tool.name,
        tool_version=context.tool.version,
        builder_id=context.builder_id(builder_prefix),
        trust_level=context.trust_level.value,
        workspace_fingerprint=workspace_fingerprint,
        products=products,
        exit_code=exit_code,
        started_at=started_at,
        finished_at=finished_at,
    )


def serialize_attestation(record: AttestationRecord) -> str:
    """Return deterministic JSON: sorted keys, two-space indent, trailing newline."""

    return json.dumps(record.to_dict(), sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def write_attestation(record: AttestationRecord, path: Path) -> Path:
    """Serialize ``record`` and atomically write it to ``path``; all-or-nothing."""

    try:
        payload = serialize_attestation(record)
    except (TypeError, ValueError) as exc:
        raise AttestationWriteError(
            (ContractViolation(ENV_OUTPUT, f"Failed to serialize attestation: {exc}"),)
        ) from exc

    try:
        atomic_write(path, payload)
    except OSError as exc:
        raise AttestationWriteError(
            (
                ContractViolation(
                    ENV_OUTPUT,
                    f"Contract violation: failed to write attestation to {path}: {exc}",
                ),
            )
        ) from exc
    return path


def _iso8601z(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        normalized = value.replace(tzinfo=UTC)
    else:
        normalized = value.astimezone(UTC)
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = [
    "AttestationRecord",
    "AttestationWriteError",
    "build_attestation",
    "serialize_attestation",
    "write_attestation",
]
