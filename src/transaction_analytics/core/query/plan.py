from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from ..enums import FieldType
from ..errors import PlanError
from .catalog import Catalog, LogicalTable
from .functions import FunctionRegistry, ScalarFunction
from .parser import ColumnRef, FunctionCall, QueryRequest, SelectItem, Star, TableRef

logger = logging.getLogger(__name__)

# Key types with total equality
_JOIN_KEY_TYPES = (FieldType.INTEGER, FieldType.STRING)


@dataclass(frozen=True)
class BoundTable:
    ref: str
    table: LogicalTable


@dataclass(frozen=True)
class BoundColumn:
    ref: str
    name: str
    type: FieldType

    @property
    def key(self) -> str:
        """Column name inside the working frame."""
        return f"{self.ref}.{self.name}"

    def display(self) -> str:
        return self.key


@dataclass(frozen=True)
class BoundCall:
    function: ScalarFunction
    args: Tuple["BoundExpr", ...]

    @property
    def type(self) -> FieldType:
        return self.function.output_type

    def display(self) -> str:
        return f"{self.function.name}({', '.join(a.display() for a in self.args)})"


BoundExpr = Union[BoundColumn, BoundCall]


@dataclass(frozen=True)
class OutputColumn:
    name: str
    expr: BoundExpr


@dataclass(frozen=True)
class BoundJoin:
    right: BoundTable
    left_key: BoundColumn
    right_key: BoundColumn


@dataclass(frozen=True)
class BoundPredicate:
    column: BoundColumn
    op: str
    value: Union[int, float, str]


@dataclass(frozen=True)
class BoundSort:
    expr: BoundExpr
    descending: bool


@dataclass(frozen=True)
class QueryPlan:
    """A query resolved against the catalog and function registry.

    Operations run in a fixed order: join, filter, sort, limit; the
    projection is selected last.
    """

    left: BoundTable
    outputs: Tuple[OutputColumn, ...]
    join: Optional[BoundJoin] = None
    predicate: Optional[BoundPredicate] = None
    sort: Optional[BoundSort] = None
    limit: Optional[int] = None

    @property
    def tables(self) -> Tuple[BoundTable, ...]:
        return (self.left,) if self.join is None else (self.left, self.join.right)

    def explain(self) -> str:
        lines: List[str] = [f"Project: {', '.join(o.name for o in self.outputs)}"]
        if self.limit is not None:
            lines.append(f"Limit: {self.limit}")
        if self.sort is not None:
            direction = "DESC" if self.sort.descending else "ASC"
            lines.append(f"Sort: {self.sort.expr.display()} {direction}")
        if self.predicate is not None:
            p = self.predicate
            lines.append(f"Filter: {p.column.display()} {p.op} {p.value!r}")
        if self.join is not None:
            j = self.join
            lines.append(f"LeftJoin: {j.left_key.display()} = {j.right_key.display()}")
        for bt in self.tables:
            lines.append(f"Scan: {bt.table.name} AS {bt.ref} ({bt.table.encoding.value})")
        return "\n".join("  " * i + line for i, line in enumerate(lines))


class _Binder:
    def __init__(self, tables: List[BoundTable], functions: FunctionRegistry) -> None:
        self.tables = tables
        self.by_ref: Dict[str, BoundTable] = {bt.ref: bt for bt in tables}
        self.functions = functions

    def column(self, ref: ColumnRef) -> BoundColumn:
        if ref.qualifier is not None:
            bt = self.by_ref.get(ref.qualifier)
            if bt is None:
                raise PlanError(f"Unknown table or alias: {ref.qualifier}")
            f = bt.table.schema.field(ref.name)
            if f is None:
                raise PlanError(f"Unknown column: {ref.display()}")
            return BoundColumn(bt.ref, f.name, f.type)

        matches = [bt for bt in self.tables if bt.table.schema.field(ref.name) is not None]
        if not matches:
            raise PlanError(f"Unknown column: {ref.name}")
        if len(matches) > 1:
            refs = ", ".join(f"{bt.ref}.{ref.name}" for bt in matches)
            raise PlanError(f"Ambiguous column '{ref.name}'; qualify it as one of: {refs}")
        bt = matches[0]
        f = bt.table.schema.field(ref.name)
        return BoundColumn(bt.ref, f.name, f.type)

    def expr(self, node: Union[ColumnRef, FunctionCall]) -> BoundExpr:
        if isinstance(node, ColumnRef):
            return self.column(node)
        registered = [n for n in node.candidates if n in self.functions]
        fn = self.functions.get(registered[0] if registered else node.name)
        if len(node.args) != len(fn.input_types):
            raise PlanError(
                f"{fn.name} takes {len(fn.input_types)} argument(s), got {len(node.args)}"
            )
        return BoundCall(fn, tuple(self.expr(a) for a in node.args))

    def star(self, item: Star) -> List[OutputColumn]:
        if item.qualifier is None:
            targets = self.tables
        else:
            bt = self.by_ref.get(item.qualifier)
            if bt is None:
                raise PlanError(f"Unknown table or alias: {item.qualifier}")
            targets = [bt]
        qualify = len(self.tables) > 1
        out = []
        for bt in targets:
            for f in bt.table.schema.fields:
                col = BoundColumn(bt.ref, f.name, f.type)
                out.append(OutputColumn(col.key if qualify else f.name, col))
        return out

    def item(self, item: SelectItem) -> List[OutputColumn]:
        if isinstance(item.expr, Star):
            return self.star(item.expr)
        bound = self.expr(item.expr)
        if item.alias:
            name = item.alias
        elif isinstance(item.expr, ColumnRef):
            name = item.expr.name
        else:
            name = _call_name(item.expr, bound)
        return [OutputColumn(name, bound)]


def _call_name(node: Union[ColumnRef, FunctionCall], bound: BoundExpr) -> str:
    """Default output name, spelled with the registered function names."""
    if isinstance(node, ColumnRef) or not isinstance(bound, BoundCall):
        return node.display()
    args = ", ".join(_call_name(a, b) for a, b in zip(node.args, bound.args))
    return f"{bound.function.name}({args})"


def _bind_tables(request: QueryRequest, catalog: Catalog) -> List[BoundTable]:
    bound: List[BoundTable] = []
    for ref in request.tables:
        if not isinstance(ref, TableRef):
            raise PlanError(f"Invalid table reference: {ref!r}")
        if any(bt.ref == ref.ref for bt in bound):
            raise PlanError(f"Table reference '{ref.ref}' used twice; give each side an alias")
        bound.append(BoundTable(ref.ref, catalog.get(ref.name)))
    return bound


def _bind_join(binder: _Binder, request: QueryRequest) -> Optional[BoundJoin]:
    if request.join is None:
        return None
    left, right = binder.tables
    a = binder.column(request.join.left_key)
    b = binder.column(request.join.right_key)
    if a.ref == right.ref and b.ref == left.ref:
        a, b = b, a
    if a.ref != left.ref or b.ref != right.ref:
        raise PlanError("JOIN condition must compare one column from each table")
    if a.type != b.type:
        raise PlanError(
            f"JOIN keys differ in type: {a.display()} is {a.type.value}, "
            f"{b.display()} is {b.type.value}"
        )
    if a.type not in _JOIN_KEY_TYPES:
        raise PlanError(f"JOIN key {a.display()} has type {a.type.value}; use integer or string")
    return BoundJoin(right=right, left_key=a, right_key=b)


def _bind_sort(
    binder: _Binder, request: QueryRequest, outputs: List[OutputColumn]
) -> Optional[BoundSort]:
    if request.sort is None:
        return None
    key = request.sort.key
    if key.qualifier is None:
        # Output names take precedence over source columns
        for out in outputs:
            if out.name == key.name:
                return BoundSort(out.expr, request.sort.descending)
    return BoundSort(binder.column(key), request.sort.descending)


def plan_query(
    request: QueryRequest, catalog: Catalog, functions: FunctionRegistry
) -> QueryPlan:
    """Resolve a parsed request against the catalog and function registry.

    Raises:
        PlanError: Unknown or duplicated table references, unknown or
            ambiguous columns, unknown functions or wrong arity, invalid join
            keys, or duplicate output column names.
    """
    tables = _bind_tables(request, catalog)
    binder = _Binder(tables, functions)

    join = _bind_join(binder, request)
    predicate = None
    if request.predicate is not None:
        p = request.predicate
        predicate = BoundPredicate(binder.column(p.column), p.op, p.value)

    outputs: List[OutputColumn] = []
    for item in request.projection:
        outputs.extend(binder.item(item))
    seen: set[str] = set()
    for out in outputs:
        if out.name in seen:
            raise PlanError(f"Duplicate output column '{out.name}'; alias one of them with AS")
        seen.add(out.name)

    plan = QueryPlan(
        left=tables[0],
        outputs=tuple(outputs),
        join=join,
        predicate=predicate,
        sort=_bind_sort(binder, request, outputs),
        limit=request.limit,
    )
    logger.debug("Query plan:\n%s", plan.explain())
    return plan
