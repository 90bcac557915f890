"""Derived columnar copy of the row-delimited source.

The CSV file is the source of truth. The Parquet file is a cache derived
from it and is only rewritten when it is missing or when the CSV checksum
recorded in its sidecar card no longer matches. Rewrites take an exclusive
lock file so two processes starting together do not write concurrently,
and land through an atomic rename so readers never see a partial file.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import polars as pl

from .errors import RegistrationError
from .query.scan import validate_csv_source
from .schemas import Schema
from .utils import file_sha256, get_derived_paths, is_readable_file

logger = logging.getLogger(__name__)

SAMPLE_CSV = "id,amount,category\n1,500,Food\n2,1500,Electronics\n3,3000,Travel\n4,7000,Luxury\n"

LOCK_POLL_INTERVAL = 0.1
STALE_LOCK_AGE = 60.0


def seed_sample_data(csv_path: Path, *, force: bool = False) -> bool:
    """Write the sample transactions CSV if it does not exist yet.

    Returns True when the file was written.
    """
    if csv_path.exists() and not force:
        logger.debug("Sample data already present at %s", csv_path)
        return False
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    csv_path.write_text(SAMPLE_CSV, encoding="utf-8")
    logger.info("Wrote sample transactions to %s", csv_path)
    return True


def _read_card(card_path: Path) -> Optional[Dict[str, Any]]:
    if not card_path.exists():
        return None
    try:
        return json.loads(card_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable source card %s: %s", card_path, e)
        return None


def is_columnar_copy_current(csv_path: Path, parquet_path: Path) -> bool:
    """True if the Parquet copy exists and was derived from the CSV as it is now."""
    if not parquet_path.exists():
        return False
    _, card_path = get_derived_paths(parquet_path)
    card = _read_card(card_path)
    if not card:
        return False
    return card.get("source_sha256") == file_sha256(csv_path)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (ProcessLookupError, OverflowError):
        return False
    except OSError:
        # EPERM: exists, owned by another user
        return True
    return True


def _lock_is_stale(lock_path: Path) -> bool:
    """True if the lock was left behind by a writer that no longer runs.

    The holder writes its PID right after creating the file. A lock whose
    content is not a PID yet is only treated as stale once it is older than
    STALE_LOCK_AGE seconds.
    """
    try:
        content = lock_path.read_text(encoding="ascii").strip()
        age = time.time() - lock_path.stat().st_mtime
    except (OSError, UnicodeDecodeError):
        return False
    if content.isdigit():
        return not _pid_alive(int(content))
    return age > STALE_LOCK_AGE


@contextmanager
def _exclusive_lock(lock_path: Path, timeout: float) -> Iterator[None]:
    deadline = time.monotonic() + max(0.0, float(timeout))
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            break
        except FileExistsError:
            if _lock_is_stale(lock_path):
                logger.warning("Removing stale regeneration lock %s", lock_path)
                lock_path.unlink(missing_ok=True)
                continue
            if time.monotonic() >= deadline:
                raise RegistrationError(
                    f"Timed out after {timeout}s waiting for regeneration lock {lock_path}"
                ) from None
            time.sleep(LOCK_POLL_INTERVAL)
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
        os.close(fd)
        yield
    finally:
        lock_path.unlink(missing_ok=True)


def ensure_columnar_copy(
    csv_path: Path,
    parquet_path: Path,
    schema: Schema,
    *,
    force: bool = False,
    lock_timeout: float = 10.0,
) -> bool:
    """Regenerate the Parquet copy of ``csv_path`` when it is missing or stale.

    Args:
        csv_path: Row-delimited source of truth.
        parquet_path: Derived columnar file to maintain.
        schema: Canonical schema the CSV must satisfy (strict coercion).
        force: Rewrite even if the copy is current.
        lock_timeout: Seconds to wait for another writer's lock.

    Returns:
        True if the Parquet file was rewritten, False if it was already current.

    Raises:
        RegistrationError: The CSV is unreadable or invalid, or the lock could
            not be acquired in time.
    """
    if not is_readable_file(csv_path):
        raise RegistrationError(f"Source CSV missing or unreadable: {csv_path}")
    if not force and is_columnar_copy_current(csv_path, parquet_path):
        logger.debug("Columnar copy %s is current", parquet_path)
        return False

    parquet_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path, card_path = get_derived_paths(parquet_path)
    with _exclusive_lock(lock_path, lock_timeout):
        # Another writer may have finished while we waited for the lock
        if not force and is_columnar_copy_current(csv_path, parquet_path):
            logger.debug("Columnar copy %s was refreshed by another writer", parquet_path)
            return False

        checksum = file_sha256(csv_path)
        validate_csv_source(csv_path, schema)
        try:
            df = pl.read_csv(csv_path, schema=schema.to_polars(), has_header=True)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise RegistrationError(f"Failed to read {csv_path}: {e}") from e

        tmp_path = parquet_path.with_name(f"{parquet_path.name}.{os.getpid()}.tmp")
        try:
            df.write_parquet(tmp_path)
            os.replace(tmp_path, parquet_path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise RegistrationError(f"Failed to write {parquet_path}: {e}") from e
        finally:
            tmp_path.unlink(missing_ok=True)

        card = {
            "source": str(csv_path),
            "source_sha256": checksum,
            "rows": df.height,
            "columns": list(schema.names),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        card_path.write_text(json.dumps(card, indent=2), encoding="utf-8")

    logger.info("Regenerated %s from %s (%d rows)", parquet_path, csv_path, df.height)
    return True
