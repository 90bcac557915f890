"""Transaction Analytics: unified query service over CSV and Parquet transactions.

The query core lives in `transaction_analytics.core`; process glue (config,
metrics, HTTP listeners, the Kafka consumer and the CLI) sits around it and
is never imported by the core.
"""

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
