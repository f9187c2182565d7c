"""End-to-end supervision runs against real shell tools and temporary mounts."""

from __future__ import annotations

import hashlib
import io
import json
import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from rdv_supervisor.config.loader import SupervisorConfig
from rdv_supervisor.sandbox import attestation as attestation_module
from rdv_supervisor.sandbox import contract as contract_module
from rdv_supervisor.sandbox import tree_hasher as tree_hasher_module
from rdv_supervisor.supervisor import run_supervisor

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

pytestmark = pytest.mark.skipif(os.name != "posix", reason="tools are /bin/sh scripts")

COPY_TOOL = """
mkdir -p "$TOOL_OUTPUT/sub"
cp "$TOOL_WORKSPACE/a.txt" "$TOOL_OUTPUT/a.txt"
cp "$TOOL_WORKSPACE/sub/b.txt" "$TOOL_OUTPUT/sub/b.txt"
"""


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _load_attestation(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _events(stream: io.StringIO) -> list[dict[str, Any]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


@pytest.fixture
def tool_env(contract_env: dict[str, str]) -> dict[str, str]:
    return {**contract_env, "PATH": os.environ.get("PATH", os.defpath)}


@pytest.fixture
def manifest(tmp_path: Path) -> Path:
    path = tmp_path / "tool-manifest.json"
    path.write_text(json.dumps({"name": "copy-tool", "version": "1.0.0"}), encoding="utf-8")
    return path


@pytest.fixture
def supervise(
    manifest: Path,
) -> Callable[..., tuple[int, list[dict[str, Any]]]]:
    def run(
        tool: Path,
        environ: Mapping[str, str],
        argv: list[str] | None = None,
    ) -> tuple[int, list[dict[str, Any]]]:
        stream = io.StringIO()
        config = SupervisorConfig(tool_candidates=(str(tool),), manifest_path=str(manifest))
        code = run_supervisor(argv or [], environ=environ, config=config, log_stream=stream)
        return code, _events(stream)

    return run


def _seed_workspace(workspace: Path) -> None:
    (workspace / "sub").mkdir()
    (workspace / "a.txt").write_bytes(b"alpha")
    (workspace / "sub" / "b.txt").write_bytes(b"beta")


def test_successful_run_attests_materials_and_products(
    workspace: Path,
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    _seed_workspace(workspace)
    tool = write_tool(COPY_TOOL)

    code, _ = supervise(tool, tool_env)

    assert code == 0
    attestation = _load_attestation(output / ".attestation.json")
    expected_materials = _sha(
        f"a.txt:{_sha(b'alpha')}\nsub/b.txt:{_sha(b'beta')}\n".encode()
    )
    assert attestation["materials"] == {"workspace": expected_materials}
    assert attestation["products"] == {
        "a.txt": {"sha256": _sha(b"alpha"), "path": str(output / "a.txt")},
        "sub/b.txt": {"sha256": _sha(b"beta"), "path": str(output / "sub" / "b.txt")},
    }
    assert attestation["tool"] == {"name": "copy-tool", "version": "1.0.0"}
    assert attestation["builder"] == {"id": "rdv-local", "trust_level": "local"}
    assert attestation["invocation_id"] == "inv-0001"
    assert attestation["spec_version"] == "0.1"
    assert attestation["signature"] is None
    assert attestation["exit_code"] == 0
    assert attestation["started_at"] <= attestation["finished_at"]
    assert not (output / ".rdv-write-test").exists()


def test_empty_workspace_fingerprint_is_hash_of_nothing(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    code, _ = supervise(write_tool("exit 0"), tool_env)

    assert code == 0
    attestation = _load_attestation(output / ".attestation.json")
    assert attestation["materials"]["workspace"] == _sha(b"")
    assert attestation["products"] == {}


def test_tool_exit_code_propagates_and_is_attested(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    tool = write_tool('echo partial > "$TOOL_OUTPUT/partial.log"\nexit 7')

    code, events = supervise(tool, tool_env)

    assert code == 7
    attestation = _load_attestation(output / ".attestation.json")
    assert attestation["exit_code"] == 7
    assert list(attestation["products"]) == ["partial.log"]
    outcome = next(e for e in events if e["message"] == "Tool exited with code 7")
    assert outcome["level"] == "warn"


def test_tool_exit_code_two_passes_through(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    code, events = supervise(write_tool("exit 2"), tool_env)

    assert code == 2
    assert _load_attestation(output / ".attestation.json")["exit_code"] == 2
    assert not any("Contract violation" in str(e["message"]) for e in events)


def test_signalled_tool_is_still_attested(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    code, events = supervise(write_tool("kill -TERM $$"), tool_env)

    expected = 128 + int(signal.SIGTERM)
    assert code == expected
    assert _load_attestation(output / ".attestation.json")["exit_code"] == expected
    assert any("SIGTERM" in str(e["message"]) for e in events)


def test_arguments_are_forwarded_unchanged(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    tool = write_tool('printf "%s\\n" "$@" > "$TOOL_OUTPUT/args.txt"')

    code, _ = supervise(tool, tool_env, ["--flag", "two words", ""])

    assert code == 0
    assert (output / "args.txt").read_text(encoding="utf-8") == "--flag\ntwo words\n\n"


def test_stale_attestation_is_never_a_product(
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    (output / ".attestation.json").write_text("{}", encoding="utf-8")
    tool = write_tool('echo forged > "$TOOL_OUTPUT/.attestation.json"')

    code, _ = supervise(tool, tool_env)

    assert code == 0
    attestation = _load_attestation(output / ".attestation.json")
    assert ".attestation.json" not in attestation["products"]
    assert attestation["exit_code"] == 0


def test_missing_bindings_are_all_reported_and_tool_never_runs(
    tmp_path: Path,
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    marker = tmp_path / "ran"
    tool = write_tool(f'touch "{marker}"')

    code, events = supervise(tool, {"PATH": os.environ.get("PATH", os.defpath)})

    assert code == 2
    assert not marker.exists()
    reported = {e["fields"]["binding"] for e in events if "binding" in e.get("fields", {})}
    assert reported == {
        "TOOL_WORKSPACE",
        "TOOL_OUTPUT",
        "TOOL_TRUST_LEVEL",
        "TOOL_INVOCATION_ID",
    }
    assert all(e["invocation_id"] == "unknown" for e in events)


def test_unwritable_output_is_a_contract_violation(
    tmp_path: Path,
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def refuse(directory: Path, probe_name: str) -> None:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(contract_module, "probe_writable", refuse)
    marker = tmp_path / "ran"

    code, events = supervise(write_tool(f'touch "{marker}"'), tool_env)

    assert code == 2
    assert not marker.exists()
    assert not (output / ".attestation.json").exists()
    assert any("is not writable (Permission denied)" in str(e["message"]) for e in events)


def test_missing_tool_binary_is_a_contract_violation(
    tmp_path: Path,
    output: Path,
    tool_env: dict[str, str],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    code, events = supervise(tmp_path / "no-such-tool", tool_env)

    assert code == 2
    assert not (output / ".attestation.json").exists()
    summary, finish = events[-2:]
    assert summary["level"] == "error"
    assert summary["fields"]["violations"] == ["tool_binary"]
    assert finish["message"].startswith("Finished with exit code 2 (duration: ")


def test_lifecycle_is_logged_in_order(
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
) -> None:
    _, events = supervise(write_tool("exit 0"), tool_env)

    messages = [str(e["message"]) for e in events if e["level"] != "debug"]
    assert messages[0] == "rdv entrypoint starting (spec 0.1)"
    assert messages[1] == "Contract validated"
    assert messages[2] == "Tool exited with code 0"
    assert messages[3].startswith("Attestation written to ")
    assert messages[4].startswith("Finished with exit code 0 (duration: ")
    assert {e["tool"] for e in events} == {"copy-tool"}
    assert {e["invocation_id"] for e in events} == {"inv-0001"}


def test_invalid_environment_config_exits_two(
    output: Path,
    tool_env: dict[str, str],
) -> None:
    stream = io.StringIO()
    environ = {**tool_env, "RDV_ATTESTATION_FILENAME": "../escape.json"}

    code = run_supervisor([], environ=environ, log_stream=stream)

    assert code == 2
    error, finish = _events(stream)
    assert error["level"] == "error"
    assert "invalid supervisor config" in error["message"]
    assert finish["fields"] == {"exit_code": 2}
    assert not any(output.iterdir())


def test_attestation_write_failure_after_successful_tool_exits_two(
    tmp_path: Path,
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def disk_full(path: Path, data: bytes | str) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(attestation_module, "atomic_write", disk_full)
    marker = tmp_path / "ran"

    code, events = supervise(write_tool(f'touch "{marker}"\nexit 0'), tool_env)

    assert code == 2
    assert marker.exists()
    assert not (output / ".attestation.json").exists()
    messages = [str(e["message"]) for e in events]
    assert "Tool exited with code 0" in messages
    assert any("failed to write attestation" in m for m in messages)
    assert messages[-1].startswith("Finished with exit code 2 (duration: ")


def test_unreadable_workspace_exits_two_before_tool_runs(
    tmp_path: Path,
    workspace: Path,
    output: Path,
    tool_env: dict[str, str],
    write_tool: Callable[..., Path],
    supervise: Callable[..., tuple[int, list[dict[str, Any]]]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _seed_workspace(workspace)

    def denied(path: Path) -> str:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(tree_hasher_module, "sha256_file", denied)
    marker = tmp_path / "ran"

    code, events = supervise(write_tool(f'touch "{marker}"'), tool_env)

    assert code == 2
    assert not marker.exists()
    assert not (output / ".attestation.json").exists()
    summary = next(e for e in events if e["level"] == "error")
    assert summary["fields"]["violations"] == ["TOOL_WORKSPACE"]
    assert events[-1]["message"].startswith("Finished with exit code 2 (duration: ")
