"""
Unit tests for partition routing.
"""

import pytest

from tsdb.obsdb_server.backend.base import quote_identifier
from tsdb.obsdb_server.errors import InvalidArgumentError, NotInitializedError, UnknownTypeError
from tsdb.obsdb_server.store.codec import ValueKind
from tsdb.obsdb_server.store.partitions import MAX_PREFIX_SIZE, PartitionRouter


class TestPartitionRouter:
    """Tests for PartitionRouter."""

    def test_table_names(self):
        router = PartitionRouter("example")

        assert router.table_for(ValueKind.STRING) == "example_ts_string"
        assert router.table_for(ValueKind.NUMBER) == "example_ts_number"
        assert router.table_for(ValueKind.ARRAY) == "example_ts_array"
        assert router.table_for(ValueKind.DATE) == "example_ts_date"
        assert router.table_for(ValueKind.BOOLEAN) == "example_ts_boolean"

    def test_scan_order(self):
        router = PartitionRouter("p")
        assert [p.kind for p in router.partitions()] == [
            ValueKind.STRING,
            ValueKind.NUMBER,
            ValueKind.ARRAY,
            ValueKind.DATE,
            ValueKind.BOOLEAN,
        ]
        assert router.tables()[0] == "p_ts_string"

    def test_value_column_types(self):
        router = PartitionRouter("p")
        assert router.partition_for(ValueKind.NUMBER).value_sql_type == "REAL"
        assert router.partition_for(ValueKind.DATE).value_sql_type == "INTEGER"
        assert router.partition_for(ValueKind.ARRAY).value_sql_type == "TEXT"

    def test_lookup_by_name(self):
        router = PartitionRouter("p")
        assert router.table_for("boolean") == "p_ts_boolean"

    def test_object_has_no_partition(self):
        router = PartitionRouter("p")
        with pytest.raises(UnknownTypeError):
            router.partition_for(ValueKind.OBJECT)
        with pytest.raises(UnknownTypeError):
            router.partition_for("bigint")

    @pytest.mark.parametrize("prefix", [None, ""])
    def test_missing_prefix(self, prefix):
        with pytest.raises(NotInitializedError):
            PartitionRouter(prefix)

    @pytest.mark.parametrize("prefix", ["1abc", "a-b", 'x"; DROP TABLE y; --', "a" * (MAX_PREFIX_SIZE + 1)])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(InvalidArgumentError):
            PartitionRouter(prefix)

    def test_disjoint_prefixes(self):
        assert not set(PartitionRouter("a").tables()) & set(PartitionRouter("b").tables())


class TestQuoteIdentifier:
    """Tests for quote_identifier."""

    def test_quotes(self):
        assert quote_identifier("obsdb_ts_number") == '"obsdb_ts_number"'

    @pytest.mark.parametrize("name", ["", "a b", 'a"b', "1a", None])
    def test_rejects(self, name):
        with pytest.raises(InvalidArgumentError):
            quote_identifier(name)
