"""Logical schema definitions for transaction data.

This module defines the canonical field list shared by every physical
source (CSV and Parquet) and the helpers that map between logical field
types and polars dtypes. Used by the registrar, the scalar function
registry and the executor to keep one notion of "type" across the package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import polars as pl

from .enums import FieldType
from .errors import SchemaError


_TYPE_ALIASES = {
    "integer": FieldType.INTEGER,
    "int": FieldType.INTEGER,
    "int64": FieldType.INTEGER,
    "bigint": FieldType.INTEGER,
    "float": FieldType.FLOAT,
    "float64": FieldType.FLOAT,
    "double": FieldType.FLOAT,
    "string": FieldType.STRING,
    "str": FieldType.STRING,
    "utf8": FieldType.STRING,
    "varchar": FieldType.STRING,
}

# Physical dtypes that may be read into a wider declared type without loss
_INTEGER_WIDENINGS = (pl.Int8, pl.Int16, pl.Int32, pl.UInt8, pl.UInt16, pl.UInt32)
_FLOAT_WIDENINGS = (pl.Float32, pl.Int8, pl.Int16, pl.Int32, pl.UInt8, pl.UInt16)


def parse_field_type(value: Union[FieldType, str]) -> FieldType:
    """Resolve a FieldType or type name to a FieldType.

    Raises:
        SchemaError: If the type is not one of integer, float or string.

    Examples:
        >>> parse_field_type("double")
        <FieldType.FLOAT: 'float'>
    """
    if isinstance(value, FieldType):
        return value
    if isinstance(value, str):
        resolved = _TYPE_ALIASES.get(value.strip().lower())
        if resolved is not None:
            return resolved
    raise SchemaError(f"Unsupported field type: {value!r}")


def field_type_for_dtype(dtype: pl.DataType) -> Optional[FieldType]:
    """Return the logical type whose canonical dtype equals ``dtype``, if any."""
    for ft in FieldType:
        if dtype == ft.polars_dtype:
            return ft
    return None


def is_safe_widening(physical: pl.DataType, declared: FieldType) -> bool:
    """True if a physical dtype equals, or widens losslessly into, ``declared``."""
    if physical == declared.polars_dtype:
        return True
    if declared is FieldType.INTEGER:
        return any(physical == t for t in _INTEGER_WIDENINGS)
    if declared is FieldType.FLOAT:
        return any(physical == t for t in _FLOAT_WIDENINGS)
    return False


@dataclass(frozen=True)
class Field:
    """A single named, typed schema field."""

    name: str
    type: FieldType
    nullable: bool = True


@dataclass(frozen=True)
class Schema:
    """Ordered, immutable field list.

    Attributes:
        fields: Fields in declaration order; names are unique.
    """

    fields: Tuple[Field, ...]

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_polars(self) -> Dict[str, pl.DataType]:
        return {f.name: f.type.polars_dtype for f in self.fields}

    def describe(self) -> Dict[str, Any]:
        return {
            "columns": list(self.names),
            "dtypes": {f.name: f.type.value for f in self.fields},
            "nullable": {f.name: f.nullable for f in self.fields},
        }


FieldSpec = Union[Field, Tuple[str, Union[FieldType, str]], Tuple[str, Union[FieldType, str], bool]]


def _coerce_field(spec: FieldSpec) -> Field:
    if isinstance(spec, Field):
        return Field(spec.name, parse_field_type(spec.type), bool(spec.nullable))
    if isinstance(spec, tuple) and len(spec) in (2, 3):
        name = spec[0]
        nullable = bool(spec[2]) if len(spec) == 3 else True
        if not isinstance(name, str):
            raise SchemaError(f"Field name must be a string, got {name!r}")
        return Field(name, parse_field_type(spec[1]), nullable)
    raise SchemaError(f"Invalid field specification: {spec!r}")


def define_schema(fields: Iterable[FieldSpec]) -> Schema:
    """Build an immutable Schema from field specifications.

    Args:
        fields: Field instances or ``(name, type[, nullable])`` tuples, in order.

    Returns:
        The Schema.

    Raises:
        SchemaError: If the list is empty, a name is empty or repeated, or a
            type is unsupported.

    Examples:
        >>> schema = define_schema([("id", "integer", False), ("amount", "float", False)])
        >>> schema.names
        ('id', 'amount')
    """
    out = [_coerce_field(spec) for spec in fields]
    if not out:
        raise SchemaError("Schema must declare at least one field")
    seen: set[str] = set()
    for f in out:
        if not f.name.strip():
            raise SchemaError("Field names must be non-empty")
        if f.name in seen:
            raise SchemaError(f"Duplicate field name: {f.name}")
        seen.add(f.name)
    return Schema(fields=tuple(out))


def transaction_schema() -> Schema:
    """Return the canonical transaction schema: id, amount, category."""
    return define_schema(
        [
            Field("id", FieldType.INTEGER, nullable=False),
            Field("amount", FieldType.FLOAT, nullable=False),
            Field("category", FieldType.STRING, nullable=False),
        ]
    )


__all__ = [
    "Field",
    "Schema",
    "define_schema",
    "transaction_schema",
    "parse_field_type",
    "field_type_for_dtype",
    "is_safe_widening",
]
