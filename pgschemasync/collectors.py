"""
collectors
==========

Snapshot collection for schema sync.

This module is responsible for reading the catalog of one schema through a
:class:`~pgschemasync.connection.QueryRunner` and turning rows into the
descriptors of :mod:`pgschemasync.models`.

Design choices
--------------
- One catalog query per object kind; every query orders its rows so that
  snapshots (and therefore the generated script) are stable across runs.
- Constraint rows fan out per participating column in the catalog join; they
  are folded back into one descriptor per ``(constraint, table)``.
- Trigger rows come one per DML event; they are grouped into one descriptor
  per ``(table, trigger)``.
- Query errors are never caught here. A failed fetch aborts the run.

Public helpers
--------------
- :func:`filter_tables` / :func:`apply_table_filter` (include/exclude patterns)
- "collect_*" functions for snapshots
"""

from __future__ import annotations

import fnmatch
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .connection import QueryRunner
from .models import (
    ColumnDescriptor,
    ConstraintDescriptor,
    IndexDescriptor,
    RoutineDescriptor,
    SequenceDescriptor,
    TableDescriptor,
    TableFilter,
    TriggerDescriptor,
)

T = TypeVar("T")


# ---- catalog queries ----
Q_LIST_TABLES = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = %s
  AND table_type = 'BASE TABLE'
ORDER BY table_name
"""

Q_COLUMNS = """
SELECT
  table_name,
  column_name,
  data_type,
  character_maximum_length,
  is_nullable,
  column_default,
  ordinal_position
FROM information_schema.columns
WHERE table_schema = %s
ORDER BY table_name, ordinal_position
"""

Q_TABLE_COLUMNS = """
SELECT
  table_name,
  column_name,
  data_type,
  character_maximum_length,
  is_nullable,
  column_default,
  ordinal_position
FROM information_schema.columns
WHERE table_schema = %s
  AND table_name = %s
ORDER BY ordinal_position
"""

# Catalog-generated NOT NULL check constraints ("2200_16386_1_not_null") are
# skipped: nullability belongs to the column comparator.
Q_CONSTRAINTS = """
SELECT
  tc.table_name,
  tc.constraint_name,
  tc.constraint_type,
  kcu.column_name,
  ccu.table_name AS foreign_table_name,
  ccu.column_name AS foreign_column_name,
  rc.update_rule,
  rc.delete_rule,
  cc.check_clause
FROM information_schema.table_constraints tc
LEFT JOIN information_schema.key_column_usage kcu
  ON tc.constraint_name = kcu.constraint_name
 AND tc.constraint_schema = kcu.constraint_schema
 AND tc.table_name = kcu.table_name
LEFT JOIN information_schema.constraint_column_usage ccu
  ON tc.constraint_name = ccu.constraint_name
 AND tc.constraint_schema = ccu.constraint_schema
LEFT JOIN information_schema.referential_constraints rc
  ON tc.constraint_name = rc.constraint_name
 AND tc.constraint_schema = rc.constraint_schema
LEFT JOIN information_schema.check_constraints cc
  ON tc.constraint_name = cc.constraint_name
 AND tc.constraint_schema = cc.constraint_schema
WHERE tc.table_schema = %s
  AND NOT (tc.constraint_type = 'CHECK' AND tc.constraint_name ~ '^[0-9]+_[0-9]+_[0-9]+_not_null$')
ORDER BY tc.table_name, tc.constraint_name, kcu.ordinal_position
"""

Q_INDEXES = """
SELECT
  i.schemaname,
  i.tablename,
  i.indexname,
  i.indexdef
FROM pg_indexes i
WHERE i.schemaname = %s
  AND NOT EXISTS (
    SELECT 1
    FROM pg_constraint c
    JOIN pg_namespace n ON n.oid = c.connamespace
    WHERE n.nspname = i.schemaname
      AND c.conname = i.indexname
      AND c.contype IN ('p', 'u', 'x')
  )
ORDER BY i.tablename, i.indexname
"""

Q_TRIGGERS = """
SELECT
  trigger_name,
  event_manipulation,
  event_object_table,
  action_timing,
  action_statement,
  action_orientation,
  action_condition
FROM information_schema.triggers
WHERE trigger_schema = %s
ORDER BY event_object_table, trigger_name, event_manipulation
"""

Q_ROUTINES = """
SELECT
  r.routine_name,
  r.routine_type,
  r.specific_name,
  r.data_type,
  pg_get_function_identity_arguments(p.oid) AS arguments,
  r.routine_definition
FROM information_schema.routines r
LEFT JOIN pg_namespace n ON n.nspname = r.specific_schema
LEFT JOIN pg_proc p ON p.pronamespace = n.oid AND r.specific_name = p.proname || '_' || p.oid
WHERE r.routine_schema = %s
  AND r.routine_type IN ('FUNCTION', 'PROCEDURE')
ORDER BY r.routine_name, r.routine_type, r.specific_name
"""

# pg_get_functiondef() refuses aggregates, so functions are restricted to
# prokind 'f'; procedures live under prokind 'p'.
Q_FUNCTION_DEF = """
SELECT pg_get_functiondef(p.oid) AS definition
FROM pg_proc p
JOIN pg_namespace n ON p.pronamespace = n.oid
WHERE n.nspname = %s
  AND p.proname = %s
  AND p.prokind = 'f'
ORDER BY p.oid
LIMIT 1
"""

Q_PROCEDURE_DEF = """
SELECT pg_get_functiondef(p.oid) AS definition
FROM pg_proc p
JOIN pg_namespace n ON p.pronamespace = n.oid
WHERE n.nspname = %s
  AND p.proname = %s
  AND p.prokind = 'p'
ORDER BY p.oid
LIMIT 1
"""

Q_ROUTINE_BODY_FALLBACK = """
SELECT routine_definition
FROM information_schema.routines
WHERE routine_schema = %s
  AND routine_name = %s
  AND routine_type = %s
ORDER BY specific_name
LIMIT 1
"""

Q_SEQUENCES = """
SELECT
  sequence_name,
  data_type,
  start_value,
  minimum_value,
  maximum_value,
  increment,
  cycle_option
FROM information_schema.sequences
WHERE sequence_schema = %s
ORDER BY sequence_name
"""


# ---- table filter helpers ----
def sql_like_to_fnmatch(pattern: str) -> str:
    """Convert SQL LIKE patterns (% and _) to fnmatch syntax (* and ?)."""
    return pattern.replace("%", "*").replace("_", "?")


def matches_pattern(name: str, pattern: str, case_sensitive: bool = False) -> bool:
    """Return True if name matches pattern (LIKE by default, regex via ``re:``)."""
    if pattern.startswith("re:"):
        flags = 0 if case_sensitive else re.IGNORECASE
        return re.search(pattern[3:], name, flags) is not None
    if not case_sensitive:
        return fnmatch.fnmatchcase(name.lower(), sql_like_to_fnmatch(pattern).lower())
    return fnmatch.fnmatchcase(name, sql_like_to_fnmatch(pattern))


def filter_tables(
    tables: Sequence[str],
    include: Sequence[str],
    exclude: Sequence[str],
    case_sensitive: bool = False,
) -> List[str]:
    """Filter tables using include/exclude patterns.

    Include patterns keep a table if it matches *any* include pattern.
    Exclude patterns drop a table if it matches *any* exclude pattern.
    """
    result = list(tables)
    if include:
        result = [t for t in result if any(matches_pattern(t, p, case_sensitive) for p in include)]
    if exclude:
        result = [t for t in result if not any(matches_pattern(t, p, case_sensitive) for p in exclude)]
    return sorted(set(result))


def apply_table_filter(items: Sequence[T], table_filter: TableFilter, table_of: Callable[[T], str]) -> List[T]:
    """Keep the items whose table passes *table_filter*, preserving order."""
    if not table_filter.include and not table_filter.exclude:
        return list(items)
    names = {table_of(item) or "" for item in items}
    allowed = set(filter_tables(sorted(names), table_filter.include, table_filter.exclude, table_filter.case_sensitive))
    return [item for item in items if (table_of(item) or "") in allowed]


# ---- row helpers ----
def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _unique(values: Iterable[Optional[str]]) -> Tuple[str, ...]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def column_from_row(row: Dict[str, Any]) -> ColumnDescriptor:
    return ColumnDescriptor(
        table=row.get("table_name") or "",
        name=_opt_str(row.get("column_name")),
        data_type=_opt_str(row.get("data_type")),
        max_length=_opt_int(row.get("character_maximum_length")),
        nullable=str(row.get("is_nullable") or "YES").upper() != "NO",
        default=_opt_str(row.get("column_default")),
        ordinal_position=_opt_int(row.get("ordinal_position")) or 0,
    )


def fold_constraint_rows(rows: Iterable[Dict[str, Any]]) -> List[ConstraintDescriptor]:
    """Deduplicate constraint rows by ``(constraint name, table name)``.

    The first row of each group supplies the scalar fields; participating
    local and foreign columns are collected in catalog order without repeats.
    """
    groups: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for row in rows:
        key = (row.get("constraint_name") or "", row.get("table_name") or "")
        groups.setdefault(key, []).append(row)

    out: List[ConstraintDescriptor] = []
    for (name, table), group in groups.items():
        first = group[0]
        out.append(
            ConstraintDescriptor(
                table=table,
                name=name,
                kind=_opt_str(first.get("constraint_type")),
                columns=_unique(r.get("column_name") for r in group),
                foreign_table=_opt_str(first.get("foreign_table_name")),
                foreign_columns=_unique(r.get("foreign_column_name") for r in group),
                on_update=_opt_str(first.get("update_rule")),
                on_delete=_opt_str(first.get("delete_rule")),
                check_expr=_opt_str(first.get("check_clause")),
            )
        )
    return out


def group_trigger_rows(rows: Iterable[Dict[str, Any]]) -> List[TriggerDescriptor]:
    """Group one-row-per-event trigger rows into one descriptor per trigger."""
    groups: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for row in rows:
        key = (row.get("event_object_table") or "", row.get("trigger_name") or "")
        groups.setdefault(key, []).append(row)

    out: List[TriggerDescriptor] = []
    for (table, name), group in groups.items():
        first = group[0]
        out.append(
            TriggerDescriptor(
                name=name,
                table=table,
                events=_unique(r.get("event_manipulation") for r in group),
                timing=_opt_str(first.get("action_timing")),
                action_statement=_opt_str(first.get("action_statement")),
                orientation=_opt_str(first.get("action_orientation")),
                condition=_opt_str(first.get("action_condition")),
            )
        )
    return out


# ---- collection functions ----
def collect_tables(runner: QueryRunner, schema: str) -> List[TableDescriptor]:
    """Collect the base tables of *schema*."""
    rows = runner.fetch_all(Q_LIST_TABLES, (schema,))
    return [TableDescriptor(name=row.get("table_name") or "") for row in rows]


def collect_columns(runner: QueryRunner, schema: str) -> List[ColumnDescriptor]:
    """Collect every column of *schema*, ordered by table then position."""
    return [column_from_row(row) for row in runner.fetch_all(Q_COLUMNS, (schema,))]


def collect_table_columns(runner: QueryRunner, schema: str, table: str) -> List[ColumnDescriptor]:
    """Collect the columns of one table, ordered by position."""
    return [column_from_row(row) for row in runner.fetch_all(Q_TABLE_COLUMNS, (schema, table))]


def collect_constraints(runner: QueryRunner, schema: str) -> List[ConstraintDescriptor]:
    """Collect table constraints, folded per ``(constraint, table)``."""
    return fold_constraint_rows(runner.fetch_all(Q_CONSTRAINTS, (schema,)))


def collect_indexes(runner: QueryRunner, schema: str) -> List[IndexDescriptor]:
    """Collect indexes that are not owned by a constraint."""
    rows = runner.fetch_all(Q_INDEXES, (schema,))
    return [
        IndexDescriptor(
            schema=row.get("schemaname") or schema,
            table=row.get("tablename") or "",
            name=row.get("indexname") or "",
            definition=_opt_str(row.get("indexdef")),
        )
        for row in rows
    ]


def collect_triggers(runner: QueryRunner, schema: str) -> List[TriggerDescriptor]:
    """Collect triggers grouped by ``(table, trigger name)``."""
    return group_trigger_rows(runner.fetch_all(Q_TRIGGERS, (schema,)))


def collect_routines(runner: QueryRunner, schema: str) -> List[RoutineDescriptor]:
    """Collect functions and procedures; the first overload of each name wins."""
    out: List[RoutineDescriptor] = []
    seen = set()
    for row in runner.fetch_all(Q_ROUTINES, (schema,)):
        name = row.get("routine_name") or ""
        kind = str(row.get("routine_type") or "FUNCTION").upper()
        if (name, kind) in seen:
            continue
        seen.add((name, kind))
        out.append(
            RoutineDescriptor(
                name=name,
                kind=kind,
                specific_name=_opt_str(row.get("specific_name")),
                data_type=_opt_str(row.get("data_type")),
                arguments=_opt_str(row.get("arguments")),
                body=_opt_str(row.get("routine_definition")),
            )
        )
    return out


def collect_routine_definition(runner: QueryRunner, schema: str, routine: RoutineDescriptor) -> Optional[str]:
    """Fetch the full ``CREATE OR REPLACE`` text of a routine.

    Functions and procedures are looked up under their own ``prokind``. When
    ``pg_get_functiondef`` yields nothing, the bare body from
    ``information_schema.routines`` is returned instead (it does not start
    with ``CREATE``; callers check for that).
    """
    query = Q_PROCEDURE_DEF if routine.kind == "PROCEDURE" else Q_FUNCTION_DEF
    rows = runner.fetch_all(query, (schema, routine.name))
    if rows and rows[0].get("definition"):
        return str(rows[0]["definition"])

    rows = runner.fetch_all(Q_ROUTINE_BODY_FALLBACK, (schema, routine.name, routine.kind))
    if rows and rows[0].get("routine_definition"):
        return str(rows[0]["routine_definition"])
    return None


def collect_sequences(runner: QueryRunner, schema: str) -> List[SequenceDescriptor]:
    """Collect sequences of *schema*."""
    rows = runner.fetch_all(Q_SEQUENCES, (schema,))
    return [
        SequenceDescriptor(
            name=row.get("sequence_name") or "",
            data_type=_opt_str(row.get("data_type")),
            start=_opt_str(row.get("start_value")),
            minimum=_opt_str(row.get("minimum_value")),
            maximum=_opt_str(row.get("maximum_value")),
            increment=_opt_str(row.get("increment")),
            cycle=str(row.get("cycle_option") or "NO").upper() == "YES",
        )
        for row in rows
    ]
