"""
rdv-supervisor — hashing utilities

File: src/rdv_supervisor/utils/hashing.py

Purpose
- Provide deterministic SHA-256 helpers for bytes, text, and files.
- Enumerate regular files under a directory and build path-qualified tree fingerprints.

Functional requirements
- Relative paths are POSIX strings with deterministic ordering.
- Symlinks are never followed and never hashed; directories contribute only through their files.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

PathLike = str | os.PathLike[str]

_FILE_READ_CHUNK_BYTES = 1024 * 1024

__all__ = [
    "EMPTY_TREE_FINGERPRINT",
    "fingerprint_manifest",
    "iter_regular_files",
    "sha256_bytes",
    "sha256_file",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_file(path: PathLike, *, chunk_size: int = _FILE_READ_CHUNK_BYTES) -> str:
    """Return SHA-256 hex digest for a file read in chunks."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with Path(path).open("rb") as file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


EMPTY_TREE_FINGERPRINT = sha256_bytes(b"")


def iter_regular_files(
    directory: PathLike,
    *,
    on_walk_error: Callable[[OSError], None] | None = None,
    on_file_error: Callable[[str, OSError], None] | None = None,
) -> Iterator[tuple[str, Path]]:
    """
    Yield ``(relative_posix_path, absolute_path)`` for every regular file under ``directory``.

    Entries are yielded in sorted order per directory, but callers that need a total
    order must still sort the collected relative paths. A missing ``directory`` yields
    nothing. ``on_walk_error`` receives directory listing failures and ``on_file_error``
    receives ``(relative_path, error)`` for listed entries that cannot be stat'ed,
    including entries that vanished after listing. Either failure is ignored when
    its callback is omitted; the entry is never yielded.
    """

    root = Path(directory).absolute()
    if not root.is_dir():
        return

    for current_dir, dir_names, file_names in os.walk(
        root, topdown=True, onerror=on_walk_error, followlinks=False
    ):
        dir_names.sort()
        file_names.sort()
        current = Path(current_dir)
        for file_name in file_names:
            file_path = current / file_name
            rel_path = file_path.relative_to(root).as_posix()
            try:
                mode = file_path.lstat().st_mode
            except OSError as exc:
                if on_file_error is not None:
                    on_file_error(rel_path, exc)
                continue
            if not stat.S_ISREG(mode):
                continue
            yield rel_path, file_path


def fingerprint_manifest(manifest: Mapping[str, str]) -> str:
    """
    Return the tree fingerprint for a ``relative_path -> sha256`` manifest.

    The fingerprint is the SHA-256 of ``"<relative-path>:<file-hash>\\n"`` lines
    concatenated in lexicographic path order. An empty manifest hashes the empty string.
    """

    digest = hashlib.sha256()
    for rel_path in sorted(manifest):
        digest.update(f"{rel_path}:{manifest[rel_path]}\n".encode())
    return digest.hexdigest()
