"""
rdv-supervisor — supervisor config loader.

File: src/rdv_supervisor/config/loader.py

Purpose
- Load the supervisor's own settings (entry-point candidates, manifest path,
  reserved filenames, builder prefix, log level) from defaults, an optional TOML
  file, and ``RDV_`` environment overrides.

What should be included in this file
- Precedence logic: env (RDV_) > file > defaults.
- TOML loading via ``tomllib``.
- Path normalization relative to config file location.

Functional requirements
- Reject unknown keys and wrongly typed values with ``ConfigLoadError``.
- A missing config file is only an error when explicitly requested.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Final

from rdv_supervisor.constants import (
    ATTESTATION_FILENAME,
    DEFAULT_BUILDER_PREFIX,
    DEFAULT_MANIFEST_PATH,
    DEFAULT_TOOL_CANDIDATES,
    PROBE_FILENAME,
)
from rdv_supervisor.observability.logging import parse_severity

ENV_PREFIX: Final[str] = "RDV_"
CONFIG_PATH_ENV: Final[str] = f"{ENV_PREFIX}SUPERVISOR_CONFIG"
CONFIG_TABLE: Final[str] = "supervisor"

_PATH_FIELDS: Final[frozenset[str]] = frozenset({"manifest_path"})
_FILENAME_FIELDS: Final[frozenset[str]] = frozenset({"attestation_filename", "probe_filename"})


class ConfigLoadError(ValueError):
    """Raised when supervisor config cannot be loaded or values cannot be coerced."""


@dataclass(frozen=True, slots=True)
class SupervisorConfig:
    """Effective supervisor settings for one invocation."""

    tool_candidates: tuple[str, ...] = DEFAULT_TOOL_CANDIDATES
    manifest_path: str = DEFAULT_MANIFEST_PATH
    attestation_filename: str = ATTESTATION_FILENAME
    probe_filename: str = PROBE_FILENAME
    builder_prefix: str = DEFAULT_BUILDER_PREFIX
    log_level: str = "info"

    def __post_init__(self) -> None:
        if not self.tool_candidates:
            raise ConfigLoadError("tool_candidates must not be empty")
        for candidate in self.tool_candidates:
            if not isinstance(candidate, str) or not candidate.strip():
                raise ConfigLoadError("tool_candidates entries must be non-empty strings")
        for name in sorted(_FILENAME_FIELDS):
            value = getattr(self, name)
            if not value or Path(value).name != value or value in {".", ".."}:
                raise ConfigLoadError(f"{name} must be a bare filename, got {value!r}")
        if self.attestation_filename == self.probe_filename:
            raise ConfigLoadError("attestation_filename and probe_filename must differ")
        if not self.manifest_path.strip():
            raise ConfigLoadError("manifest_path must not be empty")
        if not self.builder_prefix.strip():
            raise ConfigLoadError("builder_prefix must not be empty")
        try:
            parse_severity(self.log_level)
        except ValueError as exc:
            raise ConfigLoadError(str(exc)) from exc


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> SupervisorConfig:
    """Load effective config with deterministic precedence: env > file > defaults."""

    env_map = dict(os.environ if environ is None else environ)

    explicit_path = config_path is not None
    if config_path is None:
        raw_env_path = env_map.get(CONFIG_PATH_ENV, "").strip()
        if raw_env_path:
            config_path = raw_env_path
            explicit_path = True

    config = SupervisorConfig()
    if config_path is not None:
        resolved_path = Path(config_path).expanduser().resolve()
        file_payload = _load_toml_file(resolved_path, required=explicit_path)
        config = _apply_overrides(
            config,
            _normalize_file_payload(file_payload, base_dir=resolved_path.parent),
            source=str(resolved_path),
        )

    return _apply_overrides(config, _collect_env_overrides(env_map), source="environment")


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    table = parsed.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigLoadError(f"[{CONFIG_TABLE}] must be a table: {path}")
    return table


def _normalize_file_payload(payload: Mapping[str, Any], *, base_dir: Path) -> dict[str, Any]:
    normalized = dict(payload)
    for key in sorted(_PATH_FIELDS):
        value = normalized.get(key)
        if isinstance(value, str):
            normalized[key] = _normalize_one_path(value, base_dir)
    candidates = normalized.get("tool_candidates")
    if isinstance(candidates, list):
        normalized["tool_candidates"] = [
            _normalize_one_path(item, base_dir) if isinstance(item, str) else item
            for item in candidates
        ]
    return normalized


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field in fields(SupervisorConfig):
        raw = environ.get(_env_name_for_field(field.name))
        if raw is None:
            continue
        value = raw.strip()
        if field.name == "tool_candidates":
            overrides[field.name] = [item for item in value.split(os.pathsep) if item.strip()]
        else:
            overrides[field.name] = value
    return overrides


def _apply_overrides(
    config: SupervisorConfig, overrides: Mapping[str, Any], *, source: str
) -> SupervisorConfig:
    known = {field.name for field in fields(SupervisorConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigLoadError(f"unknown supervisor config keys in {source}: {', '.join(unknown)}")

    coerced: dict[str, Any] = {}
    for key in sorted(overrides):
        value = overrides[key]
        if key == "tool_candidates":
            if not isinstance(value, (list, tuple)) or not all(
                isinstance(item, str) for item in value
            ):
                raise ConfigLoadError(f"{source}: tool_candidates must be a list of strings")
            coerced[key] = tuple(value)
            continue
        if not isinstance(value, str):
            raise ConfigLoadError(f"{source}: {key} must be a string")
        coerced[key] = value

    if not coerced:
        return config
    try:
        return replace(config, **coerced)
    except ConfigLoadError as exc:
        raise ConfigLoadError(f"{source}: {exc}") from exc


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    normalized = Path(os.path.normpath(str(candidate)))
    return normalized.as_posix()


def _env_name_for_field(name: str) -> str:
    return ENV_PREFIX + name.upper()


__all__ = [
    "CONFIG_PATH_ENV",
    "CONFIG_TABLE",
    "ConfigLoadError",
    "ENV_PREFIX",
    "SupervisorConfig",
    "load_config",
]
