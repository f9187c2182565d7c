"""Shared fixtures: invocation-bound loggers, contract mounts, and tool scripts."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from rdv_supervisor.observability.logging import (
    LoggingConfig,
    StructuredLogger,
    setup_structured_logging,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> Iterator[StructuredLogger]:
    handle = setup_structured_logging(
        LoggingConfig(
            tool_name="test-tool",
            invocation_id="inv-test",
            logger_name=f"rdv_supervisor.tests.{uuid4().hex}",
            level="debug",
            stream=log_stream,
        )
    )
    yield handle
    handle.close()


@pytest.fixture
def log_events(log_stream: io.StringIO) -> Callable[[], list[dict[str, object]]]:
    def read() -> list[dict[str, object]]:
        return [json.loads(line) for line in log_stream.getvalue().splitlines() if line]

    return read


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def output(tmp_path: Path) -> Path:
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def contract_env(workspace: Path, output: Path) -> dict[str, str]:
    return {
        "TOOL_WORKSPACE": str(workspace),
        "TOOL_OUTPUT": str(output),
        "TOOL_TRUST_LEVEL": "local",
        "TOOL_INVOCATION_ID": "inv-0001",
    }


@pytest.fixture
def write_tool(tmp_path: Path) -> Callable[..., Path]:
    """Write a ``/bin/sh`` tool script without execute bits."""

    def write(body: str, *, name: str = "tool.sh") -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body.strip() + "\n", encoding="utf-8")
        path.chmod(0o644)
        return path

    return write
