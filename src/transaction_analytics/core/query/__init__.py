"""Core query engine public API.

Exposes the functions used by the CLI and bootstrap layers. Implementations
live in sibling modules. This package centralizes table registration,
scalar function dispatch, and query planning/execution over Polars frames.
"""

from .catalog import Catalog, LogicalTable, default_catalog, register_table
from .scan import scan_table
from .functions import (
    FunctionRegistry,
    ScalarFunction,
    classify_transaction,
    register_builtin_functions,
)
from .parser import QueryRequest, parse_query
from .plan import QueryPlan, plan_query
from .execute import execute, run_plan
from .materialize import ResultBatch, format_result, render_result
from .session import QuerySession

__all__ = [
    "Catalog",
    "LogicalTable",
    "default_catalog",
    "register_table",
    "scan_table",
    "FunctionRegistry",
    "ScalarFunction",
    "classify_transaction",
    "register_builtin_functions",
    "QueryRequest",
    "parse_query",
    "QueryPlan",
    "plan_query",
    "execute",
    "run_plan",
    "ResultBatch",
    "format_result",
    "render_result",
    "QuerySession",
]
