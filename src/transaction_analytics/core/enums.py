"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum

import polars as pl


class FieldType(str, Enum):
    """Primitive logical types a schema field may declare.

    Values are strings to ease serialization and CLI interchange.
    """

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"

    @property
    def polars_dtype(self) -> pl.DataType:
        return _POLARS_DTYPES[self]


_POLARS_DTYPES = {
    FieldType.INTEGER: pl.Int64(),
    FieldType.FLOAT: pl.Float64(),
    FieldType.STRING: pl.Utf8(),
}


class EncodingKind(str, Enum):
    """Physical encodings a logical table can be bound to."""

    CSV = "csv"
    PARQUET = "parquet"


class Determinism(str, Enum):
    """Volatility classification of a scalar function.

    IMMUTABLE and STABLE results may be reused for identical input within a
    single query evaluation; VOLATILE results never are.
    """

    IMMUTABLE = "immutable"
    STABLE = "stable"
    VOLATILE = "volatile"

    @property
    def allows_reuse(self) -> bool:
        return self is not Determinism.VOLATILE


__all__ = ["FieldType", "EncodingKind", "Determinism"]
