"""Executable CLI entrypoint for ``rdv_supervisor``."""

from __future__ import annotations

import signal
import sys
import traceback
from typing import TYPE_CHECKING

from rdv_supervisor.constants import CONTRACT_VIOLATION_EXIT_CODE, SIGNAL_EXIT_CODE_BASE

if TYPE_CHECKING:
    from collections.abc import Sequence


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m rdv_supervisor`` and the console script.

    Every argument is forwarded to the wrapped tool unchanged, so the supervisor
    defines no options of its own.
    """

    args = list(sys.argv[1:] if argv is None else argv)
    try:
        from rdv_supervisor.supervisor import run_supervisor

        return run_supervisor(args)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return SIGNAL_EXIT_CODE_BASE + int(signal.SIGINT)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return CONTRACT_VIOLATION_EXIT_CODE


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["cli_entrypoint"]
