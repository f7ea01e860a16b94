"""Unit tests for the table comparator."""

from pgschemasync.collectors import Q_LIST_TABLES, Q_TABLE_COLUMNS
from pgschemasync.models import ColumnDescriptor, TableFilter
from pgschemasync.tables import generate_table_operations, render_create_table

from conftest import FIXED_MS


def _tables(*names: str) -> list:
    return [{"table_name": n} for n in names]


ORDERS_COLUMNS = [
    {
        "table_name": "orders",
        "column_name": "id",
        "data_type": "integer",
        "character_maximum_length": None,
        "is_nullable": "NO",
        "column_default": "nextval('dev.orders_id_seq'::regclass)",
        "ordinal_position": 1,
    },
    {
        "table_name": "orders",
        "column_name": "note",
        "data_type": "character varying",
        "character_maximum_length": 80,
        "is_nullable": "YES",
        "column_default": None,
        "ordinal_position": 2,
    },
]


class TestRenderCreateTable:
    """Tests for render_create_table."""

    def test_columns_one_per_line(self) -> None:
        cols = [
            ColumnDescriptor(table="t", name="a", data_type="integer", nullable=False),
            ColumnDescriptor(table="t", name="b", data_type="text"),
        ]
        assert render_create_table("t", cols, "dev", "prod") == 'CREATE TABLE prod.t (\n  "a" integer NOT NULL,\n  "b" text\n);'


class TestGenerateTableOperations:
    """Tests for generate_table_operations."""

    def test_missing_table_is_created_from_source_columns(self, make_ctx) -> None:
        ctx = make_ctx(
            source={
                Q_LIST_TABLES: _tables("orders", "users"),
                Q_TABLE_COLUMNS: lambda params: ORDERS_COLUMNS if params == ("dev", "orders") else [],
            },
            target={Q_LIST_TABLES: _tables("users")},
        )
        lines = generate_table_operations(ctx)
        assert lines == [
            "-- Create missing table orders",
            "CREATE TABLE prod.orders (\n"
            "  \"id\" integer NOT NULL DEFAULT nextval('prod.orders_id_seq'::regclass),\n"
            '  "note" character varying(80)\n'
            ");",
        ]

    def test_extra_table_is_renamed_not_dropped(self, make_ctx) -> None:
        ctx = make_ctx(source={Q_LIST_TABLES: _tables("users")}, target={Q_LIST_TABLES: _tables("legacy", "users")})
        lines = generate_table_operations(ctx)
        assert lines == [
            "-- Table legacy exists in prod but not in dev",
            "-- Renaming table to preserve data before manual drop",
            f"ALTER TABLE prod.legacy RENAME TO legacy_dropped_{FIXED_MS};",
            f"-- TODO: Manually drop table prod.legacy_dropped_{FIXED_MS} after confirming data is no longer needed",
        ]
        assert not any(line.startswith("DROP") for line in lines)

    def test_creates_come_before_renames(self, make_ctx) -> None:
        ctx = make_ctx(source={Q_LIST_TABLES: _tables("a")}, target={Q_LIST_TABLES: _tables("b")})
        lines = generate_table_operations(ctx)
        assert lines[0] == "-- Create missing table a"
        assert lines[2].startswith("-- Table b exists in prod")

    def test_identical_tables_render_nothing(self, make_ctx) -> None:
        ctx = make_ctx(source={Q_LIST_TABLES: _tables("users")}, target={Q_LIST_TABLES: _tables("users")})
        assert generate_table_operations(ctx) == []
        assert all(sql != Q_TABLE_COLUMNS for sql, _ in ctx.source.calls)

    def test_filter_excludes_tables_on_both_sides(self, make_ctx) -> None:
        ctx = make_ctx(
            source={Q_LIST_TABLES: _tables("tmp_new", "users")},
            target={Q_LIST_TABLES: _tables("tmp_old", "users")},
            table_filter=TableFilter(exclude=["tmp_%"]),
        )
        assert generate_table_operations(ctx) == []

    def test_backup_names_are_distinct(self, make_ctx) -> None:
        ctx = make_ctx(source={Q_LIST_TABLES: []}, target={Q_LIST_TABLES: _tables("a", "b")})
        renames = [line for line in generate_table_operations(ctx) if line.startswith("ALTER TABLE")]
        assert renames == [
            f"ALTER TABLE prod.a RENAME TO a_dropped_{FIXED_MS};",
            f"ALTER TABLE prod.b RENAME TO b_dropped_{FIXED_MS + 1};",
        ]
