"""
rdv-supervisor — one supervised tool invocation

File: src/rdv_supervisor/supervisor.py

Purpose
- Drive the fixed sequence: validate contract, hash workspace materials, run the
  wrapped tool, collect products, write the attestation, exit.

Functional requirements
- Exit ``2`` only for contract violations; otherwise exit with the tool's own code.
- Product collection and attestation run whatever the tool's outcome.
- The flow is single-threaded; each invocation owns its output directory exclusively.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TextIO

from rdv_supervisor.config.loader import ConfigLoadError, SupervisorConfig, load_config
from rdv_supervisor.constants import (
    CONTRACT_VIOLATION_EXIT_CODE,
    ENV_WORKSPACE,
    SPEC_VERSION,
    UNKNOWN,
)
from rdv_supervisor.context import ToolIdentity, load_tool_identity, provisional_invocation_id
from rdv_supervisor.observability.logging import (
    LoggingConfig,
    StructuredLogger,
    setup_structured_logging,
)
from rdv_supervisor.sandbox.attestation import build_attestation, write_attestation
from rdv_supervisor.sandbox.contract import ContractViolationError, validate_contract
from rdv_supervisor.sandbox.process_runner import (
    BinaryNotFound,
    describe_outcome,
    discover_tool_binary,
    ensure_executable,
    run_tool,
)
from rdv_supervisor.sandbox.products import collect_products
from rdv_supervisor.sandbox.tree_hasher import hash_tree

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


@dataclass(frozen=True, slots=True)
class _Clock:
    """UTC wall-clock anchor plus monotonic offsets so finish never precedes start."""

    wall: datetime
    monotonic: float

    @classmethod
    def start(cls) -> _Clock:
        return cls(wall=datetime.now(UTC), monotonic=time.monotonic())

    def elapsed(self) -> timedelta:
        return timedelta(seconds=max(time.monotonic() - self.monotonic, 0.0))

    def now(self) -> datetime:
        return self.wall + self.elapsed()


def run_supervisor(
    argv: Sequence[str],
    *,
    environ: Mapping[str, str] | None = None,
    config: SupervisorConfig | None = None,
    log_stream: TextIO | None = None,
) -> int:
    """Supervise one tool invocation and return the process exit code."""

    env = dict(os.environ if environ is None else environ)
    invocation_id = provisional_invocation_id(env)

    run_clock = _Clock.start()
    try:
        effective_config = config if config is not None else load_config(environ=env)
    except ConfigLoadError as exc:
        logger = _setup_logger(ToolIdentity(), invocation_id, "info", log_stream)
        logger.error(f"Contract violation: invalid supervisor config: {exc}")
        _log_finish(logger, CONTRACT_VIOLATION_EXIT_CODE, run_clock.elapsed())
        return _finish_logger(logger, CONTRACT_VIOLATION_EXIT_CODE)

    tool = load_tool_identity(effective_config.manifest_path)
    logger = _setup_logger(tool, invocation_id, effective_config.log_level, log_stream)
    try:
        exit_code = _supervise(argv, env=env, tool=tool, config=effective_config, logger=logger)
    except ContractViolationError as exc:
        logger.error(
            f"Contract violation, exiting with code {CONTRACT_VIOLATION_EXIT_CODE}: {exc}",
            violations=[item.binding for item in exc.violations],
        )
        exit_code = CONTRACT_VIOLATION_EXIT_CODE
        _log_finish(logger, exit_code, run_clock.elapsed())
    return _finish_logger(logger, exit_code)


def _supervise(
    argv: Sequence[str],
    *,
    env: Mapping[str, str],
    tool: ToolIdentity,
    config: SupervisorConfig,
    logger: StructuredLogger,
) -> int:
    logger.info(f"rdv entrypoint starting (spec {SPEC_VERSION})", argv=list(argv))

    context = validate_contract(env, tool=tool, config=config, logger=logger)
    logger.info(
        "Contract validated",
        workspace=context.workspace,
        output=context.output,
        trust_level=context.trust_level,
    )

    clock = _Clock.start()
    materials = hash_tree(context.workspace, strict=True, logger=logger, binding=ENV_WORKSPACE)
    logger.debug("Workspace materials hashed", workspace=materials)

    discovered = discover_tool_binary(config.tool_candidates)
    if isinstance(discovered, BinaryNotFound):
        raise ContractViolationError.single("tool_binary", discovered.message)
    try:
        if ensure_executable(discovered.path):
            logger.debug(f"Marked {discovered.path} executable")
    except OSError as exc:
        logger.warn(f"Could not mark {discovered.path} executable: {exc}")

    tool_run = run_tool(discovered, argv, env=env)
    exit_code = tool_run.exit_code
    outcome_message = describe_outcome(tool_run.outcome)
    if exit_code == 0:
        logger.info(outcome_message, duration_ms=round(tool_run.duration_ms, 3))
    else:
        logger.warn(outcome_message, duration_ms=round(tool_run.duration_ms, 3))
    finished_at = clock.now()

    products = collect_products(context.output, exclude=config.attestation_filename, logger=logger)
    record = build_attestation(
        context,
        workspace_fingerprint=materials,
        products=products,
        exit_code=exit_code,
        started_at=clock.wall,
        finished_at=finished_at,
        builder_prefix=config.builder_prefix,
    )
    attestation_path = write_attestation(record, context.output / config.attestation_filename)
    logger.info(f"Attestation written to {attestation_path}", products=len(products))

    _log_finish(logger, exit_code, finished_at - clock.wall)
    return exit_code


def _setup_logger(
    tool: ToolIdentity,
    invocation_id: str,
    level: str,
    stream: TextIO | None,
) -> StructuredLogger:
    return setup_structured_logging(
        LoggingConfig(
            tool_name=tool.name or UNKNOWN,
            invocation_id=invocation_id,
            level=level,
            stream=stream,
        )
    )


def _log_finish(logger: StructuredLogger, exit_code: int, duration: timedelta) -> None:
    logger.info(
        f"Finished with exit code {exit_code} (duration: {duration.total_seconds() * 1000:.0f}ms)",
        exit_code=exit_code,
    )


def _finish_logger(logger: StructuredLogger, exit_code: int) -> int:
    logger.close()
    return exit_code


__all__ = ["run_supervisor"]
