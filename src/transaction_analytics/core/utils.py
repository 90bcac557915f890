"""Core utility functions for Transaction Analytics.

This module provides shared file helpers used by the registrar and the
derived columnar copy.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

CHECKSUM_CHUNK_SIZE = 1024 * 256


def get_derived_paths(parquet_path: Path) -> tuple[Path, Path]:
    """Get the lock and source-card paths that accompany a derived Parquet file.

    Constructs file paths following the standard naming convention:
    - Lock: {parquet_path}.lock
    - Card: {parquet_path}.source.json

    Args:
        parquet_path: Path to the derived Parquet file.

    Returns:
        A tuple of (lock_path, card_path).

    Examples:
        >>> from pathlib import Path
        >>> lock_path, card_path = get_derived_paths(Path("data/sample.parquet"))
        >>> print(lock_path)
        data/sample.parquet.lock
        >>> print(card_path)
        data/sample.parquet.source.json
    """
    lock_path = parquet_path.with_name(parquet_path.name + ".lock")
    card_path = parquet_path.with_name(parquet_path.name + ".source.json")
    return lock_path, card_path


def file_sha256(path: Path) -> str:
    """Return the hex SHA-256 digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(CHECKSUM_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def is_readable_file(path: Path) -> bool:
    """True if ``path`` is an existing regular file that can be opened."""
    if not path.is_file():
        return False
    try:
        with path.open("rb"):
            return True
    except OSError:
        return False
