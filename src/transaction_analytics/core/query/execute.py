"""Plan execution.

Scans feeding a join are collected together with ``polars.collect_all`` so
they may run concurrently; the join waits for both. The filter runs on the
joined rows, projection and sort keys are evaluated over the filtered rows,
then rows are sorted, limited and selected. The complete result is
materialized before returning.
"""

from __future__ import annotations

import logging
import operator
import time
from typing import Callable, Dict, List

import polars as pl

from ..errors import ExecutionError
from .catalog import Catalog
from .functions import FunctionRegistry
from .materialize import ResultBatch
from .parser import parse_query
from .plan import (
    BoundCall,
    BoundColumn,
    BoundExpr,
    BoundPredicate,
    BoundTable,
    QueryPlan,
    plan_query,
)
from .scan import scan_table

logger = logging.getLogger(__name__)

_OPERATORS: Dict[str, Callable[[pl.Expr, object], pl.Expr]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "!=": operator.ne,
}

_SORT_KEY = "__sort_key"


def _scan(bt: BoundTable) -> pl.LazyFrame:
    lf = scan_table(bt.table)
    return lf.rename({name: f"{bt.ref}.{name}" for name in bt.table.schema.names})


def _load_inputs(plan: QueryPlan) -> pl.DataFrame:
    scans = [_scan(bt) for bt in plan.tables]
    try:
        frames = pl.collect_all(scans)
    except (OSError, pl.exceptions.PolarsError) as e:
        raise ExecutionError(f"Failed to scan input tables: {e}") from e
    if plan.join is None:
        return frames[0]
    left, right = frames
    return left.join(
        right,
        left_on=plan.join.left_key.key,
        right_on=plan.join.right_key.key,
        how="left",
        coalesce=False,
        maintain_order="left",
    )


def _apply_filter(frame: pl.DataFrame, predicate: BoundPredicate) -> pl.DataFrame:
    col = predicate.column
    dtype = frame.schema[col.key]
    if not dtype.is_numeric():
        raise ExecutionError(
            f"Numeric comparison on non-numeric column {col.display()} ({col.type.value})"
        )
    if isinstance(predicate.value, (str, bool)):
        raise ExecutionError(
            f"Cannot compare numeric column {col.display()} with {predicate.value!r}"
        )
    expr = _OPERATORS[predicate.op](pl.col(col.key), predicate.value)
    try:
        return frame.filter(expr)
    except pl.exceptions.PolarsError as e:
        raise ExecutionError(f"Filter {col.display()} {predicate.op} failed: {e}") from e


class _Evaluator:
    """Evaluates bound expressions over one frame.

    Calls to functions that allow reuse are computed once per distinct
    argument list within this evaluation.
    """

    def __init__(self, frame: pl.DataFrame) -> None:
        self.frame = frame
        self._reused: Dict[BoundCall, pl.Series] = {}

    def __call__(self, expr: BoundExpr) -> pl.Series:
        if isinstance(expr, BoundColumn):
            return self.frame.get_column(expr.key)
        reusable = expr.function.determinism.allows_reuse
        if reusable and expr in self._reused:
            return self._reused[expr]
        result = expr.function.invoke([self(a) for a in expr.args])
        if reusable:
            self._reused[expr] = result
        return result


def run_plan(plan: QueryPlan) -> ResultBatch:
    """Execute a resolved plan and return the fully materialized result.

    Raises:
        ExecutionError: Scan faults or runtime type mismatches.
        EvaluationError: A scalar function fault; no partial result is kept.
    """
    frame = _load_inputs(plan)
    if plan.predicate is not None:
        frame = _apply_filter(frame, plan.predicate)

    evaluate = _Evaluator(frame)
    columns: List[pl.Series] = [
        evaluate(out.expr).alias(f"__c{i}") for i, out in enumerate(plan.outputs)
    ]
    if plan.sort is not None:
        columns.append(evaluate(plan.sort.expr).alias(_SORT_KEY))
    work = pl.DataFrame(columns)

    try:
        if plan.sort is not None:
            work = work.sort(
                _SORT_KEY,
                descending=plan.sort.descending,
                nulls_last=True,
                maintain_order=True,
            )
        if plan.limit is not None:
            # LIMIT may exceed the int64 range polars accepts
            work = work.head(min(plan.limit, work.height))
    except pl.exceptions.PolarsError as e:
        raise ExecutionError(f"Failed to order result: {e}") from e

    return ResultBatch(
        columns=tuple(out.name for out in plan.outputs),
        types=tuple(out.expr.type for out in plan.outputs),
        rows=tuple(work.select([f"__c{i}" for i in range(len(plan.outputs))]).iter_rows()),
    )


def execute(query_text: str, catalog: Catalog, function_registry: FunctionRegistry) -> ResultBatch:
    """Parse, plan and run query text against a catalog.

    Raises:
        ParseError: Malformed or unsupported query text.
        PlanError: Unknown tables, columns or functions.
        ExecutionError: Runtime faults while evaluating the plan.
    """
    started = time.perf_counter()
    request = parse_query(query_text)
    plan = plan_query(request, catalog, function_registry)
    result = run_plan(plan)
    logger.info(
        "Query returned %d row(s) in %.1f ms",
        result.row_count,
        (time.perf_counter() - started) * 1000.0,
    )
    return result
