"""Wrapped-tool discovery and execution with explicit exit-status decoding."""

from __future__ import annotations

import os
import signal
import stat
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from rdv_supervisor.constants import SIGNAL_EXIT_CODE_BASE, SPAWN_FAILED_EXIT_CODE

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(frozen=True, slots=True)
class ToolBinary:
    """Entry point selected from the candidate list."""

    path: Path


@dataclass(frozen=True, slots=True)
class BinaryNotFound:
    """No candidate path exists."""

    candidates: tuple[str, ...]

    @property
    def message(self) -> str:
        return "Tool binary not found. Expected one of: " + ", ".join(self.candidates)


@dataclass(frozen=True, slots=True)
class NormalExit:
    code: int


@dataclass(frozen=True, slots=True)
class SignaledExit:
    signal: int

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return f"signal {self.signal}"


@dataclass(frozen=True, slots=True)
class SpawnFailed:
    reason: str


ProcessOutcome = NormalExit | SignaledExit | SpawnFailed


@dataclass(frozen=True, slots=True)
class ToolRun:
    """Outcome of one wrapped-tool execution plus its wall-clock duration."""

    outcome: ProcessOutcome
    duration_ms: float

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.outcome)


def discover_tool_binary(candidates: Sequence[str | Path]) -> ToolBinary | BinaryNotFound:
    """Return the first candidate that exists as a file, in declared order."""

    for candidate in candidates:
        path = Path(candidate)
        if path.is_file():
            return ToolBinary(path=path)
    return BinaryNotFound(candidates=tuple(str(item) for item in candidates))


def ensure_executable(path: Path) -> bool:
    """Add execute bits to ``path`` when missing; return ``True`` if the mode changed."""

    if os.access(path, os.X_OK):
        return False
    mode = path.stat().st_mode
    path.chmod(mode | _EXECUTE_BITS)
    return True


def run_tool(
    binary: ToolBinary,
    argv: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> ToolRun:
    """
    Run ``binary`` with ``argv`` and block until it terminates.

    Standard streams are inherited, so the child's console output reaches the
    caller untouched. No timeout is applied.
    """

    command = [str(binary.path), *argv]
    started = time.perf_counter()
    try:
        completed = subprocess.run(
            command,
            check=False,
            env=None if env is None else dict(env),
            cwd=cwd,
        )
    except OSError as exc:
        duration_ms = (time.perf_counter() - started) * 1000.0
        return ToolRun(outcome=SpawnFailed(reason=str(exc)), duration_ms=duration_ms)

    duration_ms = (time.perf_counter() - started) * 1000.0
    return ToolRun(outcome=decode_returncode(completed.returncode), duration_ms=duration_ms)


def decode_returncode(returncode: int) -> NormalExit | SignaledExit:
    """Decode ``subprocess`` return codes; negative values mean death by signal."""

    if returncode < 0:
        return SignaledExit(signal=-returncode)
    return NormalExit(code=returncode)


def exit_code_for(outcome: ProcessOutcome) -> int:
    """Map a process outcome to the supervisor's own exit code."""

    if isinstance(outcome, NormalExit):
        return outcome.code
    if isinstance(outcome, SignaledExit):
        return SIGNAL_EXIT_CODE_BASE + outcome.signal
    return SPAWN_FAILED_EXIT_CODE


def describe_outcome(outcome: ProcessOutcome) -> str:
    if isinstance(outcome, NormalExit):
        return f"Tool exited with code {outcome.code}"
    if isinstance(outcome, SignaledExit):
        return (
            f"Tool terminated by {outcome.signal_name}; "
            f"recording exit code {exit_code_for(outcome)}"
        )
    return f"Tool could not be started: {outcome.reason}"


__all__ = [
    "BinaryNotFound",
    "NormalExit",
    "ProcessOutcome",
    "SignaledExit",
    "SpawnFailed",
    "ToolBinary",
    "ToolRun",
    "decode_returncode",
    "describe_outcome",
    "discover_tool_binary",
    "ensure_executable",
    "exit_code_for",
    "run_tool",
]
