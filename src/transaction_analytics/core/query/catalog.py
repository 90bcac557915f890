from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..enums import EncodingKind
from ..errors import PlanError, RegistrationError
from ..schemas import Schema
from ..utils import is_readable_file
from .scan import validate_csv_source, validate_parquet_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogicalTable:
    name: str
    schema: Schema
    encoding: EncodingKind
    location: Path

    def describe(self) -> Dict[str, Any]:
        """Return a schema card for this table."""
        card: Dict[str, Any] = {
            "name": self.name,
            "encoding": self.encoding.value,
            "location": str(self.location),
        }
        card.update(self.schema.describe())
        return card


def _same_location(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


class Catalog:
    """Write-once mapping of logical table names to physical sources.

    Registration is a single-writer phase that completes before the first
    query; afterwards the catalog is only read.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, LogicalTable] = {}

    def register_table(
        self,
        name: str,
        encoding_kind: Union[EncodingKind, str],
        location: Union[str, Path],
        schema: Schema,
    ) -> LogicalTable:
        """Bind ``name`` to a physical source under ``schema``.

        Re-registering an identical definition returns the existing table.

        Raises:
            RegistrationError: Duplicate name with a different definition,
                unsupported encoding, missing/unreadable location, or a source
                whose content does not satisfy the schema.
            SchemaMismatchError: Parquet type metadata or CSV header disagrees
                with the declared schema.
        """
        if not isinstance(name, str) or not name.strip():
            raise RegistrationError(f"Invalid table name: {name!r}")
        try:
            if isinstance(encoding_kind, EncodingKind):
                encoding = encoding_kind
            else:
                encoding = EncodingKind(str(encoding_kind).strip().lower())
        except ValueError as e:
            raise RegistrationError(f"Unsupported encoding kind: {encoding_kind!r}") from e
        path = Path(location)

        existing = self._tables.get(name)
        if existing is not None:
            if (
                existing.schema == schema
                and existing.encoding is encoding
                and _same_location(existing.location, path)
            ):
                logger.debug("Table %s already registered with identical definition", name)
                return existing
            raise RegistrationError(
                f"Table '{name}' is already registered with a different definition"
            )

        if not is_readable_file(path):
            raise RegistrationError(f"Source for table '{name}' missing or unreadable: {path}")

        if encoding is EncodingKind.CSV:
            rows = validate_csv_source(path, schema)
            logger.info("Registered table %s (csv, %d rows) from %s", name, rows, path)
        else:
            validate_parquet_source(path, schema)
            logger.info("Registered table %s (parquet) from %s", name, path)

        table = LogicalTable(name=name, schema=schema, encoding=encoding, location=path)
        self._tables[name] = table
        return table

    def get(self, name: str) -> LogicalTable:
        table = self._tables.get(name)
        if table is None:
            raise PlanError(f"Unknown table: {name}")
        return table

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def names(self) -> List[str]:
        return list(self._tables)

    def describe(self) -> List[Dict[str, Any]]:
        """Schema cards for every registered table, in registration order."""
        return [t.describe() for t in self._tables.values()]


_DEFAULT_CATALOG = Catalog()


def default_catalog() -> Catalog:
    """Return the process-wide catalog used when none is passed explicitly."""
    return _DEFAULT_CATALOG


def register_table(
    name: str,
    encoding_kind: Union[EncodingKind, str],
    location: Union[str, Path],
    schema: Schema,
    *,
    catalog: Optional[Catalog] = None,
) -> LogicalTable:
    """Register a table in ``catalog`` (the process-wide catalog by default)."""
    target = catalog if catalog is not None else _DEFAULT_CATALOG
    return target.register_table(name, encoding_kind, location, schema)
