"""Table comparator: create missing tables, rename extra ones for review."""

from __future__ import annotations

import logging
from typing import Hashable, List, Sequence

from .collectors import apply_table_filter, collect_table_columns, collect_tables
from .diffing import PHASE_CREATE, PHASE_DROP, ObjectComparator
from .formatting import format_column_definition, qualify
from .models import ColumnDescriptor, SyncContext, TableDescriptor

logger = logging.getLogger(__name__)


def render_create_table(
    table: str,
    columns: Sequence[ColumnDescriptor],
    source_schema: str,
    target_schema: str,
) -> str:
    """Return ``CREATE TABLE <target>.<table> (...);`` for *columns*.

    A table with no readable columns still renders (``CREATE TABLE x (\\n\\n);``
    is valid PostgreSQL).
    """
    defs = ",\n  ".join(format_column_definition(c, source_schema, target_schema) for c in columns)
    return f"CREATE TABLE {qualify(target_schema, table)} (\n  {defs}\n);"


class TableComparator(ObjectComparator[TableDescriptor]):
    """Tables are matched by name and never updated in place."""

    phases = (PHASE_CREATE, PHASE_DROP)

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: TableDescriptor) -> Hashable:
        return item.name

    def render_create(self, item: TableDescriptor) -> List[str]:
        ctx = self.ctx
        columns = collect_table_columns(ctx.source, ctx.source_schema, item.name)
        return [
            f"-- Create missing table {item.name}",
            render_create_table(item.name, columns, ctx.source_schema, ctx.target_schema),
        ]

    def render_drop(self, item: TableDescriptor) -> List[str]:
        ctx = self.ctx
        backup = ctx.namer.backup_name(item.name)
        return [
            f"-- Table {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            "-- Renaming table to preserve data before manual drop",
            f"ALTER TABLE {qualify(ctx.target_schema, item.name)} RENAME TO {backup};",
            f"-- TODO: Manually drop table {qualify(ctx.target_schema, backup)} after confirming data is no longer needed",
        ]


def generate_table_operations(ctx: SyncContext) -> List[str]:
    """Compare table lists of both schemas and return statement lines."""
    table_filter = ctx.options.table_filter
    source = apply_table_filter(collect_tables(ctx.source, ctx.source_schema), table_filter, lambda t: t.name)
    target = apply_table_filter(collect_tables(ctx.target, ctx.target_schema), table_filter, lambda t: t.name)

    comparator = TableComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info(
        "Tables: %d to create, %d to rename, %d unchanged",
        len(plan.to_create),
        len(plan.to_drop),
        len(plan.unchanged),
    )
    return comparator.render(plan)
