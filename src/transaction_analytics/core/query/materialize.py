from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TextIO, Tuple

import polars as pl

from ..enums import FieldType
from ..errors import MaterializationError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("table", "json", "csv")


@dataclass(frozen=True)
class ResultBatch:
    """Ordered, immutable rows produced by one query.

    Attributes:
        columns: Output column names in projection order.
        types: Logical type of each output column.
        rows: Row tuples in result order.
    """

    columns: Tuple[str, ...]
    types: Tuple[FieldType, ...]
    rows: Tuple[Tuple[Any, ...], ...]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column(self, name: str) -> Tuple[Any, ...]:
        idx = self.columns.index(name)
        return tuple(row[idx] for row in self.rows)

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_polars(self) -> pl.DataFrame:
        schema = {name: t.polars_dtype for name, t in zip(self.columns, self.types)}
        if not self.rows:
            return pl.DataFrame(schema=schema)
        return pl.DataFrame(list(self.rows), schema=schema, orient="row")


def format_result(batch: ResultBatch, format: str = "table") -> str:
    """Render a result as a table, JSON document or CSV text.

    Rendering never filters, coerces or reorders rows.

    Raises:
        MaterializationError: If ``format`` is not one of SUPPORTED_FORMATS.
    """
    if format == "table":
        with pl.Config(tbl_rows=-1, tbl_cols=-1, fmt_str_lengths=200):
            return str(batch.to_polars())
    elif format == "json":
        return json.dumps(
            {
                "columns": list(batch.columns),
                "data": batch.to_dicts(),
                "row_count": batch.row_count,
            }
        )
    elif format == "csv":
        return batch.to_polars().write_csv()
    else:
        raise MaterializationError(f"Unsupported format: {format}")


def render_result(
    batch: ResultBatch, sink: Optional[TextIO] = None, *, format: str = "table"
) -> None:
    """Write a rendered result to ``sink`` (stdout by default).

    Raises:
        MaterializationError: If the sink cannot be written. Not retried.
    """
    text = format_result(batch, format)
    out = sink if sink is not None else sys.stdout
    try:
        out.write(text if text.endswith("\n") else text + "\n")
        out.flush()
    except (OSError, ValueError) as e:
        # ValueError: write to a closed stream
        raise MaterializationError(f"Failed to write result: {e}") from e
    logger.debug("Rendered %d row(s) as %s", batch.row_count, format)
