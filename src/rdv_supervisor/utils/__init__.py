"""Utility exports for filesystem and hashing helpers."""

from rdv_supervisor.utils.fs import atomic_write, probe_writable
from rdv_supervisor.utils.hashing import (
    EMPTY_TREE_FINGERPRINT,
    fingerprint_manifest,
    iter_regular_files,
    sha256_bytes,
    sha256_file,
    sha256_text,
)

__all__ = [
    "EMPTY_TREE_FINGERPRINT",
    "atomic_write",
    "fingerprint_manifest",
    "iter_regular_files",
    "probe_writable",
    "sha256_bytes",
    "sha256_file",
    "sha256_text",
]
