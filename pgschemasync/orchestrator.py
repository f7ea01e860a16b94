"""
orchestrator
============

Run every comparator in dependency order and assemble the sync script.

Section order is fixed (sequences before the tables whose defaults use them,
tables before columns, routines before the triggers that call them):

1. SEQUENCE OPERATIONS
2. TABLE OPERATIONS
3. COLUMN OPERATIONS
4. FUNCTION/PROCEDURE OPERATIONS
5. CONSTRAINT OPERATIONS
6. INDEX OPERATIONS
7. TRIGGER OPERATIONS

Comparators run strictly one after another over the same two query handles.
Any exception raised by a fetch propagates out of :func:`generate_sync_script`
unchanged; no partial script is returned.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .columns import generate_column_operations
from .connection import PgConnection, PgTarget, connect, open_connections, require_schema
from .constraints import generate_constraint_operations
from .formatting import BackupNamer, count_statements, script_footer, script_header, section_header
from .indexes import generate_index_operations
from .models import SyncContext, SyncOptions
from .routines import generate_routine_operations
from .sequences import generate_sequence_operations
from .tables import generate_table_operations
from .triggers import generate_trigger_operations

logger = logging.getLogger(__name__)

Generator = Callable[[SyncContext], List[str]]

SECTIONS: List[Tuple[str, str, Generator]] = [
    ("SEQUENCE OPERATIONS", "sequences", generate_sequence_operations),
    ("TABLE OPERATIONS", "tables", generate_table_operations),
    ("COLUMN OPERATIONS", "columns", generate_column_operations),
    ("FUNCTION/PROCEDURE OPERATIONS", "functions and procedures", generate_routine_operations),
    ("CONSTRAINT OPERATIONS", "constraints", generate_constraint_operations),
    ("INDEX OPERATIONS", "indexes", generate_index_operations),
    ("TRIGGER OPERATIONS", "triggers", generate_trigger_operations),
]


@dataclass
class SyncScript:
    """A generated script, kept in sections so callers can summarize it."""

    header: List[str]
    sections: List[Tuple[str, List[str]]] = field(default_factory=list)
    footer: List[str] = field(default_factory=list)

    def lines(self) -> List[str]:
        out = list(self.header)
        for title, statements in self.sections:
            out.extend(section_header(title))
            out.extend(statements)
            out.append("")
        out.extend(self.footer)
        return out

    @property
    def text(self) -> str:
        return "\n".join(self.lines())

    def statement_counts(self) -> List[Tuple[str, int]]:
        """Return ``(section title, number of SQL lines)`` for each section."""
        return [(title, count_statements(statements)) for title, statements in self.sections]


def generate_sync_script(ctx: SyncContext, generated_at: Optional[dt.datetime] = None) -> SyncScript:
    """Run all comparators against *ctx* and return the assembled script.

    Parameters
    ----------
    ctx:
        Query handles, options and the run's backup namer.
    generated_at:
        Timestamp written in the header; defaults to now (UTC).
    """
    when = generated_at or dt.datetime.now(dt.timezone.utc)
    script = SyncScript(header=script_header(ctx.source_schema, ctx.target_schema, when))
    for title, label, generate in SECTIONS:
        logger.info("Comparing %s...", label)
        script.sections.append((title, generate(ctx)))
    script.footer = script_footer()
    return script


def run_sync(
    source: PgTarget,
    target: PgTarget,
    options: SyncOptions,
    connector: Callable[[PgTarget], PgConnection] = connect,
    namer: Optional[BackupNamer] = None,
    generated_at: Optional[dt.datetime] = None,
) -> SyncScript:
    """Open both connections, generate the script, and release the connections.

    Both schemas must exist before any comparison runs; otherwise
    :class:`~pgschemasync.connection.SchemaNotFoundError` is raised.
    Connections are closed on success and on failure; errors propagate.
    """
    logger.info("%s", source.describe())
    logger.info("%s", target.describe())
    with open_connections(source, target, connector=connector) as (source_conn, target_conn):
        require_schema(source_conn, source)
        require_schema(target_conn, target)
        ctx = SyncContext(
            source=source_conn,
            target=target_conn,
            options=options,
            namer=namer or BackupNamer(),
        )
        return generate_sync_script(ctx, generated_at=generated_at)
