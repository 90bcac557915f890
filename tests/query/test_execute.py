"""End-to-end query execution over the CSV table and its Parquet copy."""

import polars as pl
import pytest

from transaction_analytics.core.errors import EvaluationError, ExecutionError
from transaction_analytics.core.query import QuerySession, execute, register_builtin_functions

JOIN_QUERY = (
    "SELECT t.id, t.amount, a.category FROM transactions t "
    "LEFT JOIN analytics a ON t.id = a.id "
    "WHERE t.amount > 1000 ORDER BY t.amount DESC LIMIT 10"
)


def test_filter_sort_limit_scenario(session):
    """Filter, sort and limit compose over the CSV table."""
    result = session.execute(
        "SELECT id, amount, category FROM transactions "
        "WHERE amount > 1000 ORDER BY amount DESC LIMIT 10"
    )
    assert result.columns == ("id", "amount", "category")
    assert result.rows == (
        (4, 7000.0, "Luxury"),
        (3, 3000.0, "Travel"),
        (2, 1500.0, "Electronics"),
    )


def test_join_query_matches_every_left_row(session):
    """Every surviving left row finds its Parquet counterpart."""
    result = session.execute(JOIN_QUERY)
    assert result.column("category") == ("Luxury", "Travel", "Electronics")


def test_csv_and_parquet_tables_agree(session):
    """The derived copy is indistinguishable from its source."""
    csv_rows = session.execute("SELECT * FROM transactions ORDER BY id").rows
    parquet_rows = session.execute("SELECT * FROM analytics ORDER BY id").rows
    assert csv_rows == parquet_rows
    assert len(csv_rows) == 4


def test_unmatched_left_rows_get_null_right_fields(sample_csv, schema, tmp_path):
    """Left rows without a match keep null right-side fields."""
    partial = tmp_path / "partial.parquet"
    pl.DataFrame(
        {"id": [1, 2], "amount": [500.0, 1500.0], "category": ["Food", "Electronics"]},
        schema=schema.to_polars(),
    ).write_parquet(partial)
    session = QuerySession()
    session.register_table("transactions", "csv", sample_csv, schema)
    session.register_table("analytics", "parquet", partial, schema)

    result = session.execute(
        "SELECT t.id, a.id AS right_id, a.category FROM transactions t "
        "LEFT JOIN analytics a ON t.id = a.id ORDER BY t.id"
    )
    assert result.rows == (
        (1, 1, "Food"),
        (2, 2, "Electronics"),
        (3, None, None),
        (4, None, None),
    )


def test_nulls_sort_last_in_both_directions(sample_csv, schema, tmp_path):
    """Nulls go last whether the sort is ascending or descending."""
    partial = tmp_path / "one.parquet"
    pl.DataFrame(
        {"id": [3], "amount": [3000.0], "category": ["Travel"]}, schema=schema.to_polars()
    ).write_parquet(partial)
    session = QuerySession()
    session.register_table("transactions", "csv", sample_csv, schema)
    session.register_table("analytics", "parquet", partial, schema)

    for direction in ("ASC", "DESC"):
        result = session.execute(
            "SELECT t.id, a.category FROM transactions t LEFT JOIN analytics a "
            f"ON t.id = a.id ORDER BY a.category {direction}"
        )
        assert result.rows[0] == (3, "Travel")
        # Ties keep scan order
        assert result.column("id")[1:] == (1, 2, 4)


def test_limit_larger_than_rows_returns_all(session):
    """A LIMIT above the row count returns every row."""
    assert session.execute("SELECT id FROM transactions LIMIT 100").row_count == 4


def test_limit_zero_and_empty_filter(session):
    """Empty results still carry their column names."""
    assert session.execute("SELECT id FROM transactions LIMIT 0").rows == ()
    empty = session.execute(
        "SELECT id, classify_transaction(amount) AS label FROM transactions WHERE amount > 1e9"
    )
    assert empty.rows == ()
    assert empty.columns == ("id", "label")


def test_limit_applies_after_sort(session):
    """The limit keeps the top rows of the sorted order."""
    result = session.execute("SELECT id FROM transactions ORDER BY amount DESC LIMIT 1")
    assert result.rows == ((4,),)


def test_classifier_in_projection(session):
    """The built-in classifier labels each amount."""
    result = session.execute(
        "SELECT id, classify_transaction(amount) AS label FROM analytics ORDER BY id"
    )
    assert result.column("label") == ("Regular", "Regular", "Regular", "High Value")


def test_order_by_function_output(session):
    """An ORDER BY key may name an aliased function output."""
    result = session.execute(
        "SELECT id, classify_transaction(amount) AS label FROM transactions ORDER BY label"
    )
    assert result.column("id") == (4, 1, 2, 3)


def test_numeric_comparison_on_string_column(session):
    """Comparing a string column with a number fails at run time."""
    with pytest.raises(ExecutionError, match="non-numeric"):
        session.execute("SELECT id FROM transactions WHERE category > 5")


def test_string_literal_against_numeric_column(session):
    """A string literal cannot be compared with a numeric column."""
    with pytest.raises(ExecutionError):
        session.execute("SELECT id FROM transactions WHERE amount > 'big'")


def test_function_type_mismatch_is_evaluation_error(session):
    """Arguments of the wrong type fail evaluation."""
    with pytest.raises(EvaluationError):
        session.execute("SELECT classify_transaction(category) FROM transactions")


def test_function_fault_aborts_whole_query(session):
    """A failing function body aborts the query with no partial result."""
    calls = []

    def flaky(amounts):
        calls.append(len(amounts))
        raise RuntimeError("lost connection to rates service")

    session.register_scalar_function("flaky", ["float"], "float", "volatile", flaky)
    with pytest.raises(EvaluationError, match="lost connection"):
        session.execute("SELECT id, flaky(amount) AS f FROM transactions")
    assert calls == [4]


@pytest.mark.parametrize(
    "determinism,expected_calls",
    [("immutable", 1), ("stable", 1), ("volatile", 2)],
)
def test_reuse_follows_determinism(session, determinism, expected_calls):
    """Identical calls are evaluated once per query unless volatile."""
    calls = []

    def twice(amounts):
        calls.append(1)
        return amounts * 2

    session.register_scalar_function("twice", ["float"], "float", determinism, twice)
    result = session.execute("SELECT twice(amount) AS d, twice(amount) AS e FROM transactions")
    assert len(calls) == expected_calls
    assert result.column("d") == result.column("e")

    calls.clear()
    session.execute("SELECT twice(amount) AS d FROM transactions")
    assert len(calls) == 1


def test_module_execute_with_explicit_registries(session):
    """execute() works with a catalog and registry passed in directly."""
    result = execute("SELECT id FROM transactions WHERE id = 2", session.catalog, session.functions)
    assert result.rows == ((2,),)


def test_fresh_session_needs_builtins(sample_csv, schema):
    """A bare session gains the classifier once built-ins are registered."""
    session = QuerySession()
    session.register_table("transactions", "csv", sample_csv, schema)
    register_builtin_functions(session.functions)
    assert session.execute("SELECT classify_transaction(amount) AS c FROM transactions").row_count == 4


def test_limit_beyond_int64_returns_all(session):
    """A LIMIT too large for a 64-bit count still means "every row"."""
    result = session.execute("SELECT id FROM transactions LIMIT 99999999999999999999999")
    assert result.column("id") == (1, 2, 3, 4)


def test_function_named_like_a_sql_builtin(session):
    """A registered name that sqlglot folds into another function still resolves."""
    session.register_scalar_function(
        "len", ["string"], "integer", "immutable", lambda s: s.str.len_chars().cast(pl.Int64)
    )
    result = session.execute("SELECT id, len(category) FROM transactions ORDER BY id")
    assert result.columns == ("id", "len(category)")
    assert result.column("len(category)") == (4, 11, 6, 6)
