"""Module entrypoint for ``python -m rdv_supervisor``."""

from __future__ import annotations

from rdv_supervisor.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
