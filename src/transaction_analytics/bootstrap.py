"""Process bootstrapping.

Registration (schema, derived columnar copy, tables, functions) runs to
completion in ``build_session`` before any query executes; after that the
session is only read.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, TextIO

from transaction_analytics import observability
from transaction_analytics.config import AppConfig, require_readable
from transaction_analytics.core.derive import ensure_columnar_copy, seed_sample_data
from transaction_analytics.core.enums import EncodingKind
from transaction_analytics.core.query import (
    QuerySession,
    ResultBatch,
    register_builtin_functions,
    render_result,
)
from transaction_analytics.core.schemas import transaction_schema

logger = logging.getLogger(__name__)

TRANSACTIONS_TABLE = "transactions"
ANALYTICS_TABLE = "analytics"

DEFAULT_QUERY = (
    "SELECT t.id, t.amount, a.category "
    "FROM transactions t LEFT JOIN analytics a ON t.id = a.id "
    "WHERE t.amount > 1000 ORDER BY t.amount DESC LIMIT 10"
)


def build_session(
    config: AppConfig, *, seed: bool = False, force_derive: bool = False
) -> QuerySession:
    """Register both physical sources and the built-in functions.

    Raises:
        ConfigurationError: The configured CSV location is missing or unreadable.
        RegistrationError: A source fails validation or cannot be derived.
    """
    schema = transaction_schema()
    if seed:
        seed_sample_data(config.csv_path)
    csv_path = require_readable(config.csv_path, "csv_path")
    ensure_columnar_copy(csv_path, config.parquet_path, schema, force=force_derive)

    session = QuerySession()
    session.register_table(TRANSACTIONS_TABLE, EncodingKind.CSV, csv_path, schema)
    session.register_table(ANALYTICS_TABLE, EncodingKind.PARQUET, config.parquet_path, schema)
    register_builtin_functions(session.functions)
    return session


def run_query(session: QuerySession, query_text: str) -> ResultBatch:
    """Execute a query and record its outcome in the process metrics."""
    metrics = observability.get_metrics()
    started = time.perf_counter()
    ok = False
    try:
        result = session.execute(query_text)
        ok = True
        return result
    finally:
        metrics.observe_query(latency_s=time.perf_counter() - started, ok=ok)


async def run_service(
    config: AppConfig,
    *,
    query_text: str = DEFAULT_QUERY,
    sink: Optional[TextIO] = None,
    max_messages: Optional[int] = None,
) -> None:
    """Full process lifecycle: listeners, one query, then the stream consumer."""
    from transaction_analytics.ingestion.consumer import run_consumer
    from transaction_analytics.interfaces.http.server import serve_all

    observability.init()
    session = build_session(config, seed=True)
    listeners = asyncio.create_task(serve_all(config))
    try:
        render_result(run_query(session, query_text), sink)
        await asyncio.to_thread(run_consumer, config, max_messages=max_messages)
    except BaseException:
        listeners.cancel()
        raise
    await listeners
