"""Shared pytest fixtures: sample transaction files and a populated session."""

from pathlib import Path

import pytest

from transaction_analytics import config as config_module
from transaction_analytics.core.derive import SAMPLE_CSV, ensure_columnar_copy
from transaction_analytics.core.query import QuerySession, register_builtin_functions
from transaction_analytics.core.schemas import transaction_schema


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test resolves configuration from scratch."""
    monkeypatch.setattr(config_module, "_CACHED", None)
    monkeypatch.setenv("TXN_ANALYTICS_DISABLE_DOTENV", "1")
    for env_name, _ in config_module.DEFAULTS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.delenv(config_module.CONFIG_FILE_ENV, raising=False)


@pytest.fixture
def schema():
    return transaction_schema()


@pytest.fixture
def sample_csv(tmp_path) -> Path:
    path = tmp_path / "sample.csv"
    path.write_text(SAMPLE_CSV, encoding="utf-8")
    return path


@pytest.fixture
def sample_parquet(sample_csv, schema, tmp_path) -> Path:
    path = tmp_path / "sample.parquet"
    ensure_columnar_copy(sample_csv, path, schema)
    return path


@pytest.fixture
def session(sample_csv, sample_parquet, schema) -> QuerySession:
    """Session with ``transactions`` (CSV), ``analytics`` (Parquet) and built-ins."""
    s = QuerySession()
    s.register_table("transactions", "csv", sample_csv, schema)
    s.register_table("analytics", "parquet", sample_parquet, schema)
    register_builtin_functions(s.functions)
    return s
