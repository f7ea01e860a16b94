"""Tests for the end-to-end script assembly."""

import datetime as dt
import re

import psycopg2
import pytest

from pgschemasync.collectors import (
    Q_COLUMNS,
    Q_LIST_TABLES,
    Q_ROUTINES,
    Q_SEQUENCES,
    Q_TABLE_COLUMNS,
    Q_TRIGGERS,
)
from pgschemasync.connection import Q_CONNECTION_TEST, PgTarget, SchemaNotFoundError
from pgschemasync.formatting import BANNER
from pgschemasync.models import SyncOptions
from pgschemasync.orchestrator import SECTIONS, SyncScript, generate_sync_script, run_sync

from conftest import FakeRunner

WHEN = dt.datetime(2024, 5, 6, 7, 8, 9, 123000, tzinfo=dt.timezone.utc)

TITLES = [
    "SEQUENCE OPERATIONS",
    "TABLE OPERATIONS",
    "COLUMN OPERATIONS",
    "FUNCTION/PROCEDURE OPERATIONS",
    "CONSTRAINT OPERATIONS",
    "INDEX OPERATIONS",
    "TRIGGER OPERATIONS",
]


def _target(label: str, schema: str) -> PgTarget:
    return PgTarget(host="localhost", port=5432, database="app", user="u", password="", schema=schema, label=label)


SCENARIO_SOURCE = {
    Q_LIST_TABLES: [{"table_name": "orders"}, {"table_name": "users"}],
    Q_TABLE_COLUMNS: lambda params: [
        {"table_name": params[1], "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1}
    ],
    Q_COLUMNS: [
        {"table_name": "users", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1},
        {
            "table_name": "users",
            "column_name": "email",
            "data_type": "character varying",
            "character_maximum_length": 255,
            "is_nullable": "NO",
            "ordinal_position": 2,
        },
    ],
    Q_SEQUENCES: [{"sequence_name": "orders_id_seq", "data_type": "bigint"}],
}

SCENARIO_TARGET = {
    Q_LIST_TABLES: [{"table_name": "users"}, {"table_name": "legacy"}],
    Q_COLUMNS: [
        {"table_name": "users", "column_name": "id", "data_type": "integer", "is_nullable": "NO", "ordinal_position": 1},
    ],
    Q_TRIGGERS: [
        {
            "trigger_name": "old_trigger",
            "event_manipulation": "INSERT",
            "event_object_table": "users",
            "action_timing": "BEFORE",
            "action_statement": "EXECUTE FUNCTION prod.noop()",
            "action_orientation": "ROW",
        }
    ],
    Q_ROUTINES: [{"routine_name": "noop", "routine_type": "FUNCTION", "arguments": ""}],
}


class TestSyncScript:
    """Tests for SyncScript."""

    def test_statement_counts(self) -> None:
        script = SyncScript(header=[], sections=[("A", ["-- c", "SELECT 1;", ""]), ("B", [])])
        assert script.statement_counts() == [("A", 1), ("B", 0)]

    def test_section_titles_in_order(self) -> None:
        assert [title for title, _, _ in SECTIONS] == TITLES


class TestGenerateSyncScript:
    """Tests for generate_sync_script."""

    def test_empty_schemas(self, make_ctx) -> None:
        script = generate_sync_script(make_ctx(), generated_at=WHEN)
        expected = [
            BANNER,
            "-- Schema Sync Script",
            "-- Source Schema: dev",
            "-- Target Schema: prod",
            "-- Generated: 2024-05-06T07:08:09.123+00:00",
            BANNER,
            "",
        ]
        for title in TITLES:
            expected += [BANNER, f"-- {title}", BANNER, ""]
        expected += ["", BANNER, "-- END OF SCHEMA SYNC SCRIPT", BANNER]
        assert script.lines() == expected
        assert script.text == "\n".join(expected)
        assert all(count == 0 for _, count in script.statement_counts())

    def test_scenarios_land_in_their_sections(self, make_ctx) -> None:
        script = generate_sync_script(make_ctx(source=SCENARIO_SOURCE, target=SCENARIO_TARGET), generated_at=WHEN)
        sections = dict(script.sections)

        assert sections["SEQUENCE OPERATIONS"][0] == "-- Create missing sequence orders_id_seq"
        tables = sections["TABLE OPERATIONS"]
        assert tables[:2] == ["-- Create missing table orders", 'CREATE TABLE prod.orders (\n  "id" integer NOT NULL\n);']
        assert "-- Table legacy exists in prod but not in dev" in tables
        assert sections["COLUMN OPERATIONS"] == [
            'ALTER TABLE prod.users ADD COLUMN "email" character varying(255);',
            "UPDATE prod.users SET \"email\" = '' WHERE \"email\" IS NULL;",
            'ALTER TABLE prod.users ALTER COLUMN "email" SET NOT NULL;',
        ]
        assert sections["FUNCTION/PROCEDURE OPERATIONS"][0] == "-- FUNCTION noop exists in prod but not in dev"
        assert sections["TRIGGER OPERATIONS"] == [
            "-- Trigger old_trigger exists in prod but not in dev",
            "DROP TRIGGER IF EXISTS old_trigger ON prod.users;",
        ]

    def test_identical_runs_differ_only_in_timestamps(self, make_ctx) -> None:
        first = generate_sync_script(make_ctx(source=SCENARIO_SOURCE, target=SCENARIO_TARGET), generated_at=WHEN)
        second = generate_sync_script(make_ctx(source=SCENARIO_SOURCE, target=SCENARIO_TARGET), generated_at=WHEN)
        assert re.sub(r"_\d{13}", "_TS", first.text) == re.sub(r"_\d{13}", "_TS", second.text)

    def test_backup_names_unique_across_sections(self, make_ctx) -> None:
        script = generate_sync_script(make_ctx(source=SCENARIO_SOURCE, target=SCENARIO_TARGET), generated_at=WHEN)
        stamps = re.findall(r"_dropped_(\d{13})\b;", script.text)
        assert len(stamps) == 2
        assert len(set(stamps)) == 2

    def test_fetch_failure_propagates(self, make_ctx) -> None:
        ctx = make_ctx()
        ctx.target = FakeRunner(error=psycopg2.OperationalError("server closed the connection"))
        with pytest.raises(psycopg2.OperationalError):
            generate_sync_script(ctx, generated_at=WHEN)


def _checked(responses=None, has_schema: bool = True) -> FakeRunner:
    """Runner that answers the schema check, plus any catalog responses."""
    rows = [{"database": "app", "username": "u", "has_schema": has_schema}]
    return FakeRunner({Q_CONNECTION_TEST: rows, **(responses or {})})


class TestRunSync:
    """Tests for run_sync connection handling."""

    def test_connections_closed_once_on_success(self) -> None:
        runners = {"source": _checked(), "target": _checked()}
        script = run_sync(
            _target("source", "dev"),
            _target("target", "prod"),
            SyncOptions(source_schema="dev", target_schema="prod"),
            connector=lambda t: runners[t.label],
            generated_at=WHEN,
        )
        assert script.header[2] == "-- Source Schema: dev"
        assert runners["source"].close_count == 1
        assert runners["target"].close_count == 1

    def test_connections_closed_once_on_failure(self) -> None:
        runners = {
            "source": _checked(),
            "target": FakeRunner(error=psycopg2.ProgrammingError("permission denied for schema prod")),
        }
        with pytest.raises(psycopg2.ProgrammingError):
            run_sync(
                _target("source", "dev"),
                _target("target", "prod"),
                SyncOptions(source_schema="dev", target_schema="prod"),
                connector=lambda t: runners[t.label],
            )
        assert runners["source"].close_count == 1
        assert runners["target"].close_count == 1

    def test_source_closed_when_target_connect_fails(self) -> None:
        source = _checked()

        def connector(t: PgTarget) -> FakeRunner:
            if t.label == "target":
                raise psycopg2.OperationalError("could not connect")
            return source

        with pytest.raises(psycopg2.OperationalError):
            run_sync(
                _target("source", "dev"),
                _target("target", "prod"),
                SyncOptions(source_schema="dev", target_schema="prod"),
                connector=connector,
            )
        assert source.close_count == 1

    def test_misspelled_target_schema_stops_before_comparing(self) -> None:
        runners = {"source": _checked(SCENARIO_SOURCE), "target": _checked(has_schema=False)}
        with pytest.raises(SchemaNotFoundError, match=r"target: .*schema=prdo \(schema not found\)"):
            run_sync(
                _target("source", "dev"),
                _target("target", "prdo"),
                SyncOptions(source_schema="dev", target_schema="prdo"),
                connector=lambda t: runners[t.label],
            )
        assert runners["source"].calls == [(Q_CONNECTION_TEST, ("dev",))]
        assert runners["target"].calls == [(Q_CONNECTION_TEST, ("prdo",))]
        assert runners["source"].close_count == 1
        assert runners["target"].close_count == 1

    def test_missing_source_schema_is_checked_first(self) -> None:
        runners = {"source": _checked(has_schema=False), "target": _checked()}
        with pytest.raises(SchemaNotFoundError, match="^source: "):
            run_sync(
                _target("source", "dve"),
                _target("target", "prod"),
                SyncOptions(source_schema="dve", target_schema="prod"),
                connector=lambda t: runners[t.label],
            )
        assert runners["target"].calls == []
