"""
generate
========

Dump the DDL of a single schema, without comparing it to anything.

Three files are produced from one connection:

- ``schema.sql``: sequences, tables with their keys, checks and indexes, then
  every foreign key in a trailing section
- ``procs.sql``: functions, then procedures, as ``CREATE OR REPLACE`` text
- ``triggers.sql``: ``CREATE TRIGGER`` statements grouped per table

``--schema-only``, ``--procs-only`` and ``--triggers-only`` narrow the run to
one file. Statements come from the same collectors and renderers as the sync
script, qualified with the dumped schema itself.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .collectors import (
    apply_table_filter,
    collect_columns,
    collect_constraints,
    collect_indexes,
    collect_routine_definition,
    collect_routines,
    collect_sequences,
    collect_tables,
    collect_triggers,
)
from .columns import group_by_table, quote_ident
from .connection import PgConnection, PgTarget, QueryRunner, connect, require_schema
from .constraints import constraint_clause, constraint_name
from .formatting import BANNER, BackupNamer, qualify, section_header
from .indexes import rewrite_index_definition
from .models import ConstraintDescriptor, TableFilter, TriggerDescriptor
from .routines import render_definition
from .sequences import render_create_sequence
from .tables import render_create_table
from .triggers import render_create_trigger
from .utils import write_text

logger = logging.getLogger(__name__)

SCHEMA_FILE = "schema.sql"
PROCS_FILE = "procs.sql"
TRIGGERS_FILE = "triggers.sql"
DEFAULT_GEN_DIR = "output"


@dataclass(frozen=True)
class GenOptions:
    """Which files to produce and which tables to include.

    At most one of the ``*_only`` flags is expected to be set; with none set,
    all three files are generated.
    """

    schema_only: bool = False
    procs_only: bool = False
    triggers_only: bool = False
    table_filter: TableFilter = field(default_factory=TableFilter)

    def wants(self, name: str) -> bool:
        only = {SCHEMA_FILE: self.schema_only, PROCS_FILE: self.procs_only, TRIGGERS_FILE: self.triggers_only}
        if not any(only.values()):
            return True
        return only[name]


@dataclass(frozen=True)
class GeneratedFile:
    name: str
    content: str


# -----------------------------
# Layout
# -----------------------------
def file_header(title: str, description: str, target: PgTarget, generated_at: dt.datetime) -> List[str]:
    """Return the banner block that opens a generated file."""
    return [
        BANNER,
        f"-- {title.upper()}",
        BANNER,
        f"-- Generated: {generated_at.isoformat(timespec='milliseconds')}",
        f"-- Database: {target.database}",
        f"-- Schema: {target.schema}",
        f"-- Description: {description}",
        BANNER,
        "",
    ]


def file_footer(title: str) -> List[str]:
    return ["", BANNER, f"-- END OF {title.upper()}", BANNER]


def banner(title: str) -> List[str]:
    """Like :func:`~pgschemasync.formatting.section_header` but keeps the case of *title*."""
    return [BANNER, f"-- {title}", BANNER]


def _join(lines: List[str]) -> str:
    return "\n".join(lines) + "\n"


# -----------------------------
# schema.sql
# -----------------------------
def _add_constraint(schema: str, item: ConstraintDescriptor, namer: BackupNamer) -> str:
    return (
        f"ALTER TABLE {qualify(schema, item.table)} "
        f"ADD CONSTRAINT {constraint_name(item, namer)} {constraint_clause(item, schema, schema)};"
    )


def generate_schema_sql(
    runner: QueryRunner,
    target: PgTarget,
    table_filter: TableFilter,
    generated_at: dt.datetime,
    namer: Optional[BackupNamer] = None,
) -> GeneratedFile:
    """Render sequences, tables, constraints and indexes of ``target.schema``."""
    schema = target.schema
    namer = namer or BackupNamer()
    tables = apply_table_filter(collect_tables(runner, schema), table_filter, lambda t: t.name)
    names = {t.name for t in tables}
    columns = group_by_table(collect_columns(runner, schema))
    constraints = [c for c in collect_constraints(runner, schema) if c.table in names]
    indexes = [i for i in collect_indexes(runner, schema) if i.table in names]
    sequences = collect_sequences(runner, schema)
    logger.info("Schema: %d tables, %d sequences", len(tables), len(sequences))

    lines = file_header("Schema Definition", "Tables, columns, constraints and indexes", target, generated_at)
    if schema != "public":
        lines += ["-- Create schema if it doesn't exist", f"CREATE SCHEMA IF NOT EXISTS {quote_ident(schema)};", ""]

    if sequences:
        lines += ["-- Sequences", *(render_create_sequence(s, schema) for s in sequences), ""]

    foreign_keys: List[ConstraintDescriptor] = []
    for table in tables:
        lines += banner(f"TABLE: {qualify(schema, table.name)}")
        lines += [render_create_table(table.name, columns.get(table.name, []), schema, schema), ""]

        own = [c for c in constraints if c.table == table.name]
        foreign_keys += [c for c in own if (c.kind or "").upper() == "FOREIGN KEY"]
        local = [c for c in own if (c.kind or "").upper() != "FOREIGN KEY"]
        if local:
            lines += ["-- Table constraints", *(_add_constraint(schema, c, namer) for c in local), ""]

        own_indexes = [i for i in indexes if i.table == table.name]
        if own_indexes:
            lines.append("-- Indexes")
            lines += [rewrite_index_definition(i.definition, i.name, schema) for i in own_indexes]
            lines.append("")

    if foreign_keys:
        lines += section_header("FOREIGN KEYS")
        lines += [_add_constraint(schema, c, namer) for c in foreign_keys]

    lines += file_footer("Schema Definition")
    return GeneratedFile(SCHEMA_FILE, _join(lines))


# -----------------------------
# procs.sql
# -----------------------------
def generate_procs_sql(runner: QueryRunner, target: PgTarget, generated_at: dt.datetime) -> GeneratedFile:
    """Render every function, then every procedure, of ``target.schema``."""
    schema = target.schema
    routines = collect_routines(runner, schema)
    logger.info("Routines: %d", len(routines))

    lines = file_header("Functions and Procedures", "Stored functions and procedures", target, generated_at)
    for kind, title in (("FUNCTION", "FUNCTIONS"), ("PROCEDURE", "PROCEDURES")):
        selected = [r for r in routines if r.kind == kind]
        if not selected:
            continue
        lines += section_header(title)
        for routine in selected:
            lines.append(f"-- {kind}: {qualify(schema, routine.name)}")
            definition = collect_routine_definition(runner, schema, routine)
            lines += render_definition(definition, routine, schema, schema)
            lines.append("")

    lines += file_footer("Functions and Procedures")
    return GeneratedFile(PROCS_FILE, _join(lines))


# -----------------------------
# triggers.sql
# -----------------------------
def generate_triggers_sql(
    runner: QueryRunner,
    target: PgTarget,
    table_filter: TableFilter,
    generated_at: dt.datetime,
) -> GeneratedFile:
    """Render the triggers of ``target.schema`` grouped by table."""
    schema = target.schema
    triggers = apply_table_filter(collect_triggers(runner, schema), table_filter, lambda t: t.table)
    logger.info("Triggers: %d", len(triggers))

    by_table: Dict[str, List[TriggerDescriptor]] = {}
    for trigger in triggers:
        by_table.setdefault(trigger.table, []).append(trigger)

    lines = file_header("Triggers", "Table triggers", target, generated_at)
    for table, table_triggers in by_table.items():
        lines += banner(f"TRIGGERS FOR TABLE: {qualify(schema, table)}")
        for trigger in table_triggers:
            lines += [render_create_trigger(trigger, schema, schema), ""]

    lines += file_footer("Triggers")
    return GeneratedFile(TRIGGERS_FILE, _join(lines))


# -----------------------------
# Entry points
# -----------------------------
def generate_files(
    runner: QueryRunner,
    target: PgTarget,
    options: GenOptions,
    generated_at: Optional[dt.datetime] = None,
) -> List[GeneratedFile]:
    """Produce the files selected by *options*, in schema/procs/triggers order."""
    when = generated_at or dt.datetime.now(dt.timezone.utc)
    files: List[GeneratedFile] = []
    if options.wants(SCHEMA_FILE):
        files.append(generate_schema_sql(runner, target, options.table_filter, when))
    if options.wants(PROCS_FILE):
        files.append(generate_procs_sql(runner, target, when))
    if options.wants(TRIGGERS_FILE):
        files.append(generate_triggers_sql(runner, target, options.table_filter, when))
    return files


def run_gen(
    target: PgTarget,
    options: GenOptions,
    connector: Callable[[PgTarget], PgConnection] = connect,
    generated_at: Optional[dt.datetime] = None,
) -> List[GeneratedFile]:
    """Connect to *target*, check its schema exists, and generate the files.

    The connection is closed on success and on failure; errors propagate.
    """
    logger.info("%s", target.describe())
    with closing(connector(target)) as conn:
        require_schema(conn, target)
        return generate_files(conn, target, options, generated_at=generated_at)


def write_generated(files: List[GeneratedFile], out_dir: Path) -> List[Path]:
    """Write each file under *out_dir* and return the written paths."""
    paths = []
    for f in files:
        path = out_dir / f.name
        write_text(path, f.content)
        logger.info("Generated %s", path)
        paths.append(path)
    return paths


def format_for_stdout(files: List[GeneratedFile]) -> str:
    """Concatenate *files*, each preceded by a banner naming it."""
    parts: List[str] = []
    for f in files:
        parts += [BANNER, f"-- {f.name}", BANNER, f.content]
    return "\n".join(parts)
