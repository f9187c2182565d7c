"""Environment and mount contract validation for tool containers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from rdv_supervisor.constants import (
    ENV_CACHE,
    ENV_CONFIG,
    ENV_INVOCATION_ID,
    ENV_OUTPUT,
    ENV_TRUST_LEVEL,
    ENV_WORKSPACE,
    MOUNT_BINDINGS,
    REQUIRED_BINDINGS,
)
from rdv_supervisor.context import InvocationContext, TrustLevel
from rdv_supervisor.utils.fs import probe_writable

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from rdv_supervisor.config.loader import SupervisorConfig
    from rdv_supervisor.context import ToolIdentity
    from rdv_supervisor.observability.logging import StructuredLogger


@dataclass(frozen=True, slots=True)
class ContractViolation:
    """One violated precondition or postcondition, named by its binding."""

    binding: str
    message: str


class ContractViolationError(RuntimeError):
    """Raised when the supervisor's own contract cannot be met; maps to exit code 2."""

    def __init__(self, violations: Iterable[ContractViolation]) -> None:
        self.violations: tuple[ContractViolation, ...] = tuple(violations)
        if not self.violations:
            raise ValueError("ContractViolationError requires at least one violation")
        super().__init__("; ".join(item.message for item in self.violations))

    @classmethod
    def single(cls, binding: str, message: str) -> ContractViolationError:
        return cls((ContractViolation(binding=binding, message=message),))


def validate_contract(
    environ: Mapping[str, str],
    *,
    tool: ToolIdentity,
    config: SupervisorConfig,
    logger: StructuredLogger,
) -> InvocationContext:
    """
    Check bindings and mounts in one pass and return the invocation context.

    Every violation is logged at ``error`` before :class:`ContractViolationError`
    is raised with all of them. The only side effect on success is the removed
    write probe.
    """

    violations: list[ContractViolation] = []
    bound: dict[str, str] = {}

    for env_name, description in REQUIRED_BINDINGS:
        value = environ.get(env_name, "").strip()
        if not value:
            violations.append(
                ContractViolation(
                    env_name, f"Contract violation: {env_name} ({description}) not set"
                )
            )
            continue
        bound[env_name] = value

    trust_level: TrustLevel | None = None
    if ENV_TRUST_LEVEL in bound:
        try:
            trust_level = TrustLevel.parse(bound[ENV_TRUST_LEVEL])
        except ValueError as exc:
            violations.append(ContractViolation(ENV_TRUST_LEVEL, f"Contract violation: {exc}"))

    mounts_ok: dict[str, bool] = {}
    for env_name, description in MOUNT_BINDINGS:
        if env_name not in bound:
            continue
        path = Path(bound[env_name])
        if not path.exists():
            message = f"Contract violation: {description} mount not found at {path}"
        elif not path.is_dir():
            message = f"Contract violation: {description} mount at {path} is not a directory"
        else:
            mounts_ok[env_name] = True
            continue
        violations.append(ContractViolation(env_name, message))

    if mounts_ok.get(ENV_OUTPUT):
        output = Path(bound[ENV_OUTPUT])
        try:
            probe_writable(output, config.probe_filename)
        except OSError as exc:
            reason = exc.strerror or str(exc)
            violations.append(
                ContractViolation(
                    ENV_OUTPUT,
                    f"Contract violation: output mount {output} is not writable ({reason})",
                )
            )

    if violations:
        for violation in violations:
            logger.error(violation.message, binding=violation.binding)
        raise ContractViolationError(violations)

    if trust_level is None:  # pragma: no cover - unreachable once bindings validated.
        raise RuntimeError("trust level unresolved after successful validation")
    return InvocationContext(
        tool=tool,
        invocation_id=bound[ENV_INVOCATION_ID],
        trust_level=trust_level,
        workspace=Path(bound[ENV_WORKSPACE]).absolute(),
        output=Path(bound[ENV_OUTPUT]).absolute(),
        cache=_optional_path(environ, ENV_CACHE),
        config=_optional_path(environ, ENV_CONFIG),
    )


def _optional_path(environ: Mapping[str, str], env_name: str) -> Path | None:
    value = environ.get(env_name, "").strip()
    if not value:
        return None
    return Path(value).absolute()


__all__ = [
    "ContractViolation",
    "ContractViolationError",
    "validate_contract",
]
