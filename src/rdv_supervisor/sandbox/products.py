"""Fingerprint every file a tool left in its output mount."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from rdv_supervisor.utils.hashing import iter_regular_files, sha256_file

if TYPE_CHECKING:
    from rdv_supervisor.observability.logging import StructuredLogger


@dataclass(frozen=True, slots=True)
class ProductRecord:
    """Content hash and absolute location of one produced file."""

    sha256: str
    path: Path

    def to_dict(self) -> dict[str, str]:
        return {"sha256": self.sha256, "path": str(self.path)}


def collect_products(
    output_dir: str | Path,
    *,
    exclude: str,
    logger: StructuredLogger,
) -> dict[str, ProductRecord]:
    """
    Hash every regular file under ``output_dir`` except ``exclude`` at its root.

    Files that cannot be hashed are reported at ``warn`` and omitted; partial
    output is still worth attesting to. Call only after the tool has exited.
    """

    root = Path(output_dir).absolute()

    def on_walk_error(exc: OSError) -> None:
        logger.warn(f"Could not list output directory {exc.filename}: {exc}", path=exc.filename)

    def on_file_error(rel_path: str, exc: OSError) -> None:
        logger.warn(f"Could not stat product {rel_path}: {exc}", path=rel_path)

    products: dict[str, ProductRecord] = {}
    for rel_path, file_path in iter_regular_files(
        root, on_walk_error=on_walk_error, on_file_error=on_file_error
    ):
        if rel_path == exclude:
            continue
        try:
            digest = sha256_file(file_path)
        except OSError as exc:
            logger.warn(f"Could not hash product {rel_path}: {exc}", path=rel_path)
            continue
        products[rel_path] = ProductRecord(sha256=digest, path=file_path)

    return dict(sorted(products.items(), key=lambda item: item[0]))


__all__ = ["ProductRecord", "collect_products"]
