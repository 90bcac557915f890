import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

import colorlog

from transaction_analytics import __version__ as _PACKAGE_VERSION
from transaction_analytics import observability
from transaction_analytics.bootstrap import DEFAULT_QUERY, build_session, run_query
from transaction_analytics.config import AppConfig, load_config
from transaction_analytics.core.derive import ensure_columnar_copy, seed_sample_data
from transaction_analytics.core.errors import (
    ConfigurationError,
    ParseError,
    PlanError,
    TransactionAnalyticsError,
)
from transaction_analytics.core.query.materialize import SUPPORTED_FORMATS, render_result
from transaction_analytics.core.schemas import transaction_schema


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = (
        "%(asctime)s:%(levelname)s:%(name)s in %(filename)s:%(funcName)s:%(lineno)d: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    # Results go to stdout; keep logs on stderr
    stream_handler = colorlog.StreamHandler(sys.stderr)
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _config(args: argparse.Namespace) -> AppConfig:
    return load_config(getattr(args, "config", None))


def cmd_init_data(args: argparse.Namespace) -> int:
    """Write the sample transactions CSV (kept if present unless --force)."""
    config = _config(args)
    written = seed_sample_data(config.csv_path, force=bool(args.force))
    if not written:
        logging.info("Sample data already present at %s (use --force to overwrite)", config.csv_path)
    return 0


def cmd_derive(args: argparse.Namespace) -> int:
    """Regenerate the Parquet copy when the CSV changed (or always with --force)."""
    config = _config(args)
    rewritten = ensure_columnar_copy(
        config.csv_path,
        config.parquet_path,
        transaction_schema(),
        force=bool(args.force),
        lock_timeout=float(args.lock_timeout),
    )
    if not rewritten:
        logging.info("Columnar copy %s is up to date", config.parquet_path)
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    """Run one query against the registered tables and print the result."""
    config = _config(args)
    observability.init()
    session = build_session(config, seed=bool(args.seed))
    query_text = args.sql or DEFAULT_QUERY
    if args.explain:
        print(session.plan(query_text).explain())
        return 0
    result = run_query(session, query_text)
    render_result(result, format=args.format)
    return 0


def cmd_tables(args: argparse.Namespace) -> int:
    """List registered tables as schema cards."""
    config = _config(args)
    session = build_session(config, seed=bool(args.seed))
    print(json.dumps(session.tables(), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run only the liveness and metrics listeners."""
    from transaction_analytics.interfaces.http.server import serve_all

    config = _config(args)
    observability.init()
    asyncio.run(serve_all(config))
    return 0


def cmd_consume(args: argparse.Namespace) -> int:
    """Log payloads from the transactions topic."""
    from transaction_analytics.ingestion.consumer import run_consumer

    config = _config(args)
    observability.init()
    handled = run_consumer(config, max_messages=args.max_messages)
    logging.info("Consumer stopped after %d message(s)", handled)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start listeners, run the default query, then consume the topic."""
    from transaction_analytics.bootstrap import run_service

    config = _config(args)
    asyncio.run(
        run_service(config, query_text=args.sql or DEFAULT_QUERY, max_messages=args.max_messages)
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="transaction-analytics",
        description=f"Transaction Analytics (v{_PACKAGE_VERSION})",
    )
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Show only warnings and errors (overrides --verbose)",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Show only errors (overrides --warnings-only and --verbose)",
    )
    p.add_argument(
        "--config",
        default=None,
        help="YAML config file (environment variables still take precedence)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init-data", help="Write the sample transactions CSV")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing CSV")
    p_init.set_defaults(func=cmd_init_data)

    p_derive = sub.add_parser("derive", help="Regenerate the Parquet copy of the CSV if stale")
    p_derive.add_argument("--force", action="store_true", help="Rewrite even if current")
    p_derive.add_argument(
        "--lock-timeout",
        default=10.0,
        type=float,
        help="Seconds to wait for another writer's lock (default 10)",
    )
    p_derive.set_defaults(func=cmd_derive)

    p_query = sub.add_parser("query", help="Run a query (defaults to the join report)")
    p_query.add_argument("sql", nargs="?", default=None, help="Query text")
    p_query.add_argument(
        "--format",
        choices=SUPPORTED_FORMATS,
        default="table",
        help="Output format (default table)",
    )
    p_query.add_argument(
        "--seed",
        action="store_true",
        help="Write the sample CSV first if it is missing",
    )
    p_query.add_argument(
        "--explain",
        action="store_true",
        help="Print the resolved plan instead of running it",
    )
    p_query.set_defaults(func=cmd_query)

    p_tables = sub.add_parser("tables", help="List registered tables")
    p_tables.add_argument("--seed", action="store_true", help="Write the sample CSV if missing")
    p_tables.set_defaults(func=cmd_tables)

    p_serve = sub.add_parser("serve", help="Run the liveness and metrics listeners")
    p_serve.set_defaults(func=cmd_serve)

    p_consume = sub.add_parser("consume", help="Log messages from the transactions topic")
    p_consume.add_argument(
        "--max-messages",
        type=int,
        default=None,
        help="Stop after this many messages (default: run until interrupted)",
    )
    p_consume.set_defaults(func=cmd_consume)

    p_run = sub.add_parser("run", help="Full service: listeners, default query, consumer")
    p_run.add_argument("sql", nargs="?", default=None, help="Query text to run at startup")
    p_run.add_argument("--max-messages", type=int, default=None, help=argparse.SUPPRESS)
    p_run.set_defaults(func=cmd_run)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    try:
        return args.func(args)
    except (ConfigurationError, ParseError, PlanError) as e:
        logging.error("%s", e)
        return 2
    except TransactionAnalyticsError as e:
        logging.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
