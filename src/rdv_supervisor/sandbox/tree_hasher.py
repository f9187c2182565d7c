"""Deterministic path-qualified fingerprints of directory trees."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rdv_supervisor.sandbox.contract import ContractViolation, ContractViolationError
from rdv_supervisor.utils.hashing import fingerprint_manifest, iter_regular_files, sha256_file

if TYPE_CHECKING:
    from rdv_supervisor.observability.logging import StructuredLogger


class TreeHashError(ContractViolationError):
    """Raised when a strict tree hash cannot read every file under its root."""


def create_manifest(
    directory: str | Path,
    *,
    strict: bool,
    logger: StructuredLogger | None = None,
    binding: str = "tree",
) -> dict[str, str]:
    """
    Build a ``relative_path -> sha256`` manifest for ``directory``.

    A missing ``directory`` yields an empty manifest. In strict mode any listing or
    read failure raises :class:`TreeHashError`; otherwise the unreadable file is
    skipped and reported as a ``warn`` event.
    """

    root = Path(directory)

    def on_walk_error(exc: OSError) -> None:
        if strict:
            raise _tree_hash_error(binding, root, exc) from exc
        if logger is not None:
            logger.warn(f"Skipping unreadable directory under {root}: {exc}", path=exc.filename)

    def on_file_error(rel_path: str, exc: OSError) -> None:
        if strict:
            raise _tree_hash_error(binding, root, exc) from exc
        if logger is not None:
            logger.warn(f"Skipping {rel_path}: could not stat ({exc})", path=rel_path)

    manifest: dict[str, str] = {}
    for rel_path, file_path in iter_regular_files(
        root, on_walk_error=on_walk_error, on_file_error=on_file_error
    ):
        try:
            manifest[rel_path] = sha256_file(file_path)
        except OSError as exc:
            if strict:
                raise _tree_hash_error(binding, root, exc) from exc
            if logger is not None:
                logger.warn(f"Skipping {rel_path}: could not hash ({exc})", path=rel_path)

    return dict(sorted(manifest.items(), key=lambda item: item[0]))


def hash_tree(
    directory: str | Path,
    *,
    strict: bool = False,
    logger: StructuredLogger | None = None,
    binding: str = "tree",
) -> str:
    """Return the tree fingerprint of ``directory`` (empty-tree digest when absent)."""

    return fingerprint_manifest(
        create_manifest(directory, strict=strict, logger=logger, binding=binding)
    )


def _tree_hash_error(binding: str, root: Path, exc: OSError) -> TreeHashError:
    target = exc.filename if exc.filename is not None else root
    return TreeHashError(
        (
            ContractViolation(
                binding=binding,
                message=f"Contract violation: cannot hash {target} under {root}: {exc}",
            ),
        )
    )


__all__ = [
    "TreeHashError",
    "create_manifest",
    "hash_tree",
]
