"""Tests for table registration against CSV and Parquet sources."""

import polars as pl
import pytest

from transaction_analytics.core.enums import EncodingKind
from transaction_analytics.core.errors import (
    PlanError,
    RegistrationError,
    SchemaMismatchError,
)
from transaction_analytics.core.query import Catalog, register_table, scan_table
from transaction_analytics.core.schemas import define_schema


def write_parquet(path, data, schema):
    pl.DataFrame(data, schema=schema).write_parquet(path)
    return path


def _csv(tmp_path, text, name="t.csv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestCsvRegistration:
    def test_registers_valid_csv(self, sample_csv, schema):
        """Encoding names are case-insensitive and the table is retrievable."""
        catalog = Catalog()
        table = catalog.register_table("transactions", "CSV", sample_csv, schema)
        assert table.encoding is EncodingKind.CSV
        assert "transactions" in catalog
        assert catalog.get("transactions") is table

    def test_cell_failing_coercion_aborts(self, tmp_path, schema):
        """Strict policy: one bad cell fails the whole registration."""
        path = _csv(tmp_path, "id,amount,category\n1,500,Food\n2,not-a-number,Travel\n")
        catalog = Catalog()
        with pytest.raises(RegistrationError):
            catalog.register_table("transactions", "csv", path, schema)
        assert len(catalog) == 0

    def test_null_in_required_field_aborts(self, tmp_path, schema):
        """A null in a non-nullable field fails registration."""
        path = _csv(tmp_path, "id,amount,category\n1,,Food\n")
        with pytest.raises(RegistrationError, match="non-nullable field 'amount'"):
            Catalog().register_table("transactions", "csv", path, schema)

    def test_header_out_of_order_is_mismatch(self, tmp_path, schema):
        """Header columns must follow the schema order."""
        path = _csv(tmp_path, "id,category,amount\n1,Food,500\n")
        with pytest.raises(SchemaMismatchError):
            Catalog().register_table("transactions", "csv", path, schema)

    def test_nullable_field_may_be_empty(self, tmp_path):
        """Empty cells are allowed in nullable fields."""
        schema = define_schema([("id", "integer", False), ("note", "string")])
        path = _csv(tmp_path, "id,note\n1,\n2,hello\n")
        Catalog().register_table("notes", "csv", path, schema)


class TestParquetRegistration:
    def test_safe_widening_accepted(self, tmp_path, schema):
        """Int32/Float32 storage reads as integer/float."""
        path = write_parquet(
            tmp_path / "narrow.parquet",
            {"id": [1, 2], "amount": [1.5, 2.5], "category": ["a", "b"]},
            {"id": pl.Int32, "amount": pl.Float32, "category": pl.Utf8},
        )
        table = Catalog().register_table("narrow", "parquet", path, schema)
        df = scan_table(table).collect()
        assert dict(df.schema) == {"id": pl.Int64, "amount": pl.Float64, "category": pl.Utf8}

    def test_incompatible_type_is_mismatch(self, tmp_path, schema):
        """A stored string cannot back an integer field."""
        path = write_parquet(
            tmp_path / "bad.parquet",
            {"id": ["1"], "amount": [1.0], "category": ["a"]},
            {"id": pl.Utf8, "amount": pl.Float64, "category": pl.Utf8},
        )
        with pytest.raises(SchemaMismatchError, match="'id'"):
            Catalog().register_table("bad", "parquet", path, schema)

    def test_lossy_widening_is_mismatch(self, tmp_path, schema):
        """Int64 storage does not widen into float."""
        path = write_parquet(
            tmp_path / "lossy.parquet",
            {"id": [1], "amount": [1], "category": ["a"]},
            {"id": pl.Int64, "amount": pl.Int64, "category": pl.Utf8},
        )
        with pytest.raises(SchemaMismatchError, match="'amount'"):
            Catalog().register_table("lossy", "parquet", path, schema)

    def test_extra_column_is_mismatch(self, tmp_path, schema):
        """Stored columns must match the schema exactly."""
        path = write_parquet(
            tmp_path / "extra.parquet",
            {"id": [1], "amount": [1.0], "category": ["a"], "note": ["x"]},
            {"id": pl.Int64, "amount": pl.Float64, "category": pl.Utf8, "note": pl.Utf8},
        )
        with pytest.raises(SchemaMismatchError, match="note"):
            Catalog().register_table("extra", "parquet", path, schema)

    def test_null_in_required_field_aborts(self, tmp_path, schema):
        """A null in a non-nullable field fails registration."""
        path = write_parquet(
            tmp_path / "nulls.parquet",
            {"id": [1, 2], "amount": [1.0, 2.0], "category": ["a", None]},
            {"id": pl.Int64, "amount": pl.Float64, "category": pl.Utf8},
        )
        with pytest.raises(RegistrationError, match="category"):
            Catalog().register_table("nulls", "parquet", path, schema)


class TestCatalogRules:
    def test_identical_registration_is_noop(self, sample_csv, schema):
        """Repeating a registration returns the existing table."""
        catalog = Catalog()
        first = catalog.register_table("transactions", "csv", sample_csv, schema)
        again = catalog.register_table("transactions", EncodingKind.CSV, str(sample_csv), schema)
        assert again is first
        assert catalog.names() == ["transactions"]

    def test_conflicting_schema_raises(self, sample_csv, schema):
        """A name cannot be re-registered with another schema."""
        catalog = Catalog()
        catalog.register_table("transactions", "csv", sample_csv, schema)
        other = define_schema([("id", "integer"), ("amount", "float"), ("category", "string")])
        with pytest.raises(RegistrationError, match="different definition"):
            catalog.register_table("transactions", "csv", sample_csv, other)

    def test_conflicting_encoding_raises(self, sample_csv, sample_parquet, schema):
        """A name cannot be re-registered with another encoding."""
        catalog = Catalog()
        catalog.register_table("transactions", "csv", sample_csv, schema)
        with pytest.raises(RegistrationError):
            catalog.register_table("transactions", "parquet", sample_parquet, schema)

    def test_unsupported_encoding(self, sample_csv, schema):
        """Only csv and parquet encodings are known."""
        with pytest.raises(RegistrationError, match="encoding"):
            Catalog().register_table("t", "avro", sample_csv, schema)

    def test_missing_location(self, tmp_path, schema):
        """The data file must exist when the table is registered."""
        with pytest.raises(RegistrationError, match="missing or unreadable"):
            Catalog().register_table("t", "csv", tmp_path / "nope.csv", schema)

    def test_unknown_table_is_plan_error(self):
        """Looking up an unregistered table is a plan error."""
        with pytest.raises(PlanError):
            Catalog().get("ghost")

    def test_describe_cards(self, session):
        """Cards list tables in registration order with their columns."""
        cards = session.tables()
        assert [c["name"] for c in cards] == ["transactions", "analytics"]
        assert cards[1]["encoding"] == "parquet"
        assert cards[0]["columns"] == ["id", "amount", "category"]

    def test_module_level_register_uses_given_catalog(self, sample_csv, schema):
        """register_table() writes into the catalog it is given."""
        catalog = Catalog()
        register_table("transactions", "csv", sample_csv, schema, catalog=catalog)
        assert catalog.names() == ["transactions"]
