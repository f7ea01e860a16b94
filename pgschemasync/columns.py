"""
columns
=======

Column comparator.

Only tables present on both sides are considered; tables that exist on one
side only belong to :mod:`pgschemasync.tables`.

Rendering rules
---------------
- missing column: ``ADD COLUMN``; a ``NOT NULL`` column without a default is
  added nullable, back-filled with a type-appropriate sentinel, then set
  ``NOT NULL``
- extra column: renamed to ``<name>_dropped_<ts>`` with a manual-drop reminder
- changed column: one ``ALTER TABLE`` whose ``ALTER COLUMN`` actions cover ``TYPE``,
  ``SET/DROP NOT NULL`` and ``SET/DROP DEFAULT``
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, List, Optional, Sequence

from .collectors import apply_table_filter, collect_columns
from .diffing import ObjectComparator
from .formatting import describe_column, format_column_definition, qualify, rewrite_qualifier, sentinel_default
from .models import ColumnDescriptor, SyncContext

logger = logging.getLogger(__name__)


def group_by_table(columns: Sequence[ColumnDescriptor]) -> Dict[str, List[ColumnDescriptor]]:
    """Group columns by table, keeping the first-seen table order."""
    grouped: Dict[str, List[ColumnDescriptor]] = {}
    for col in columns:
        grouped.setdefault(col.table, []).append(col)
    return grouped


def quote_ident(name: Optional[str]) -> str:
    return f'"{name or ""}"'


class ColumnComparator(ObjectComparator[ColumnDescriptor]):
    """Columns of one table pair, matched by ``(table, name)``."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: ColumnDescriptor) -> Hashable:
        return (item.table, item.name)

    def source_default(self, column: ColumnDescriptor) -> Optional[str]:
        """Source default as it would read once created in the target schema."""
        return rewrite_qualifier(column.default, self.ctx.source_schema, self.ctx.target_schema)

    def changed(self, source: ColumnDescriptor, target: ColumnDescriptor) -> bool:
        return (
            source.effective_type != target.effective_type
            or source.nullable != target.nullable
            or self.source_default(source) != target.default
        )

    def render_drop(self, item: ColumnDescriptor) -> List[str]:
        ctx = self.ctx
        backup = ctx.namer.backup_name(item.name)
        table = qualify(ctx.target_schema, item.table)
        return [
            f"-- Column {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            "-- Renaming column to preserve data before manual drop",
            f"ALTER TABLE {table} RENAME COLUMN {quote_ident(item.name)} TO {quote_ident(backup)};",
            f"-- TODO: Manually drop column {table}.{backup} after confirming data is no longer needed",
        ]

    def render_create(self, item: ColumnDescriptor) -> List[str]:
        ctx = self.ctx
        table = qualify(ctx.target_schema, item.table)
        needs_backfill = not item.nullable and not item.default
        definition = format_column_definition(
            item,
            ctx.source_schema,
            ctx.target_schema,
            include_not_null=not needs_backfill,
        )
        lines = [f"ALTER TABLE {table} ADD COLUMN {definition};"]
        if needs_backfill:
            col = quote_ident(item.name)
            lines.append(f"UPDATE {table} SET {col} = {sentinel_default(item.data_type)} WHERE {col} IS NULL;")
            lines.append(f"ALTER TABLE {table} ALTER COLUMN {col} SET NOT NULL;")
        return lines

    def render_update(self, source: ColumnDescriptor, target: ColumnDescriptor) -> List[str]:
        ctx = self.ctx
        clauses: List[str] = []
        if source.effective_type != target.effective_type:
            clauses.append(f"TYPE {source.effective_type}")
        if source.nullable != target.nullable:
            clauses.append("DROP NOT NULL" if source.nullable else "SET NOT NULL")
        default = self.source_default(source)
        if default != target.default:
            clauses.append(f"SET DEFAULT {default}" if default else "DROP DEFAULT")

        col = quote_ident(source.name)
        actions = ", ".join(f"ALTER COLUMN {col} {clause}" for clause in clauses)
        statement = f"ALTER TABLE {qualify(ctx.target_schema, source.table)} {actions};"
        return [
            f"-- Modifying column {source.table}.{source.name}",
            f"--   {ctx.source_schema}: {describe_column(source)}",
            f"--   {ctx.target_schema}: {describe_column(target)}",
            statement,
        ]


def generate_column_operations(ctx: SyncContext) -> List[str]:
    """Compare columns of every table present in both schemas."""
    table_filter = ctx.options.table_filter
    source = group_by_table(apply_table_filter(collect_columns(ctx.source, ctx.source_schema), table_filter, lambda c: c.table))
    target = group_by_table(apply_table_filter(collect_columns(ctx.target, ctx.target_schema), table_filter, lambda c: c.table))

    comparator = ColumnComparator(ctx)
    lines: List[str] = []
    for table, source_cols in source.items():
        target_cols = target.get(table)
        if target_cols is None:
            continue
        plan = comparator.diff(source_cols, target_cols)
        if not plan.is_empty:
            logger.debug(
                "Columns of %s: %d to add, %d to rename, %d to modify",
                table,
                len(plan.to_create),
                len(plan.to_drop),
                len(plan.to_update),
            )
        lines.extend(comparator.render(plan))
    return lines
