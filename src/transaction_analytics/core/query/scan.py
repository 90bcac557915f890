from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

import polars as pl

from ..enums import EncodingKind
from ..errors import RegistrationError, SchemaMismatchError
from ..schemas import Schema, is_safe_widening

if TYPE_CHECKING:
    from .catalog import LogicalTable

logger = logging.getLogger(__name__)


def _null_counts(lf: pl.LazyFrame, names: List[str]) -> Dict[str, int]:
    if not names:
        return {}
    row = lf.select([pl.col(n).null_count() for n in names]).collect().row(0)
    return dict(zip(names, (int(v) for v in row)))


def _check_required_fields(lf: pl.LazyFrame, schema: Schema, path: Path) -> None:
    required = [f.name for f in schema.fields if not f.nullable]
    for name, count in _null_counts(lf, required).items():
        if count:
            raise RegistrationError(
                f"{path}: non-nullable field '{name}' has {count} null value(s)"
            )


def validate_csv_source(path: Path, schema: Schema) -> int:
    """Check a CSV source against the schema in strict mode.

    The header must list the schema fields in order; every cell must coerce
    to its declared type; non-nullable fields may not hold nulls.

    Returns the number of data rows.
    """
    try:
        header = pl.read_csv(path, n_rows=0, infer_schema_length=0).columns
    except (OSError, pl.exceptions.PolarsError) as e:
        raise RegistrationError(f"Failed to read CSV header from {path}: {e}") from e
    if tuple(header) != schema.names:
        raise SchemaMismatchError(
            f"{path}: header {list(header)} does not match schema fields {list(schema.names)}"
        )
    try:
        df = pl.read_csv(path, schema=schema.to_polars(), has_header=True)
    except (OSError, pl.exceptions.PolarsError) as e:
        raise RegistrationError(f"{path}: cell failed coercion to the declared type: {e}") from e
    _check_required_fields(df.lazy(), schema, path)
    return df.height


def validate_parquet_source(path: Path, schema: Schema) -> None:
    """Check a Parquet file's embedded type metadata against the schema.

    Each physical column must equal, or safely widen into, the declared type.
    """
    try:
        physical = dict(pl.read_parquet_schema(path))
    except (OSError, pl.exceptions.PolarsError) as e:
        raise RegistrationError(f"Failed to read Parquet metadata from {path}: {e}") from e

    missing = [n for n in schema.names if n not in physical]
    extra = [n for n in physical if schema.field(n) is None]
    if missing or extra:
        raise SchemaMismatchError(
            f"{path}: columns differ from schema (missing={missing}, unexpected={extra})"
        )
    for f in schema.fields:
        dtype = physical[f.name]
        if not is_safe_widening(dtype, f.type):
            raise SchemaMismatchError(
                f"{path}: column '{f.name}' is stored as {dtype}, declared {f.type.value}"
            )
    try:
        _check_required_fields(pl.scan_parquet(path), schema, path)
    except pl.exceptions.PolarsError as e:
        raise RegistrationError(f"Failed to read Parquet data from {path}: {e}") from e


def scan_source(encoding: EncodingKind, path: Path, schema: Schema) -> pl.LazyFrame:
    """Return a LazyFrame over a physical source, cast to the canonical schema."""
    if encoding is EncodingKind.CSV:
        lf = pl.scan_csv(path, schema=schema.to_polars(), has_header=True)
    else:
        lf = pl.scan_parquet(path)
    return lf.select([pl.col(f.name).cast(f.type.polars_dtype) for f in schema.fields])


def scan_table(table: "LogicalTable") -> pl.LazyFrame:
    """Return a LazyFrame scanning a registered table without materializing."""
    logger.debug("Scanning %s (%s) at %s", table.name, table.encoding.value, table.location)
    return scan_source(table.encoding, table.location, table.schema)
