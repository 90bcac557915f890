"""High-level facade tying the catalog, function registry and executor together."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..enums import Determinism, EncodingKind, FieldType
from ..schemas import Schema
from .catalog import Catalog, LogicalTable
from .execute import execute
from .functions import FunctionRegistry, ScalarBody
from .materialize import ResultBatch
from .parser import parse_query
from .plan import QueryPlan, plan_query


class QuerySession:
    """One execution context: a catalog plus the functions queries may call.

    Register tables and functions first; once the first query runs the
    session is treated as read-only and may be shared by concurrent readers.
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        functions: Optional[FunctionRegistry] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else Catalog()
        self.functions = functions if functions is not None else FunctionRegistry()

    def register_table(
        self,
        name: str,
        encoding_kind: Union[EncodingKind, str],
        location: Union[str, Path],
        schema: Schema,
    ) -> LogicalTable:
        return self.catalog.register_table(name, encoding_kind, location, schema)

    def register_scalar_function(
        self,
        name: str,
        input_types: Sequence[Union[FieldType, str]],
        output_type: Union[FieldType, str],
        determinism: Union[Determinism, str],
        body: ScalarBody,
    ) -> None:
        self.functions.register_scalar_function(name, input_types, output_type, determinism, body)

    def plan(self, query_text: str) -> QueryPlan:
        """Parse and resolve query text without running it."""
        return plan_query(parse_query(query_text), self.catalog, self.functions)

    def execute(self, query_text: str) -> ResultBatch:
        return execute(query_text, self.catalog, self.functions)

    def tables(self) -> List[Dict[str, Any]]:
        return self.catalog.describe()
