"""
constraints
===========

Constraint comparator.

Constraints are matched by ``(table, name)``. A constraint cannot be altered
in place, so a changed constraint is renamed to ``<name>_old_<ts>`` for manual
review and the source definition is added next to it.

Clause builder
--------------
:func:`constraint_clause` renders the part after ``ADD CONSTRAINT <name>``:

- ``PRIMARY KEY (cols)``
- ``UNIQUE (cols)``
- ``FOREIGN KEY (cols) REFERENCES <target>.<ftable>(<fcols>)`` plus
  ``ON UPDATE`` / ``ON DELETE`` when the rule is not ``NO ACTION``
- ``CHECK (<expr>)``
- ``EXCLUDE (cols)``

Missing reference data or an unknown kind yields a ``/* TODO ... */``
placeholder instead of an error.
"""

from __future__ import annotations

import logging
import re
from typing import Hashable, List, Optional

from .collectors import apply_table_filter, collect_constraints
from .columns import quote_ident
from .diffing import ObjectComparator
from .formatting import BackupNamer, qualify, rewrite_qualifier
from .models import ConstraintDescriptor, SyncContext

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 63

_VALID_NAME = re.compile(r"^[A-Za-z_]")


def constraint_clause(constraint: ConstraintDescriptor, source_schema: str, target_schema: str) -> str:
    """Return the constraint body for ``ALTER TABLE ... ADD CONSTRAINT <name>``."""
    kind = (constraint.kind or "").upper()
    cols = ", ".join(constraint.columns)

    if kind == "PRIMARY KEY":
        return f"PRIMARY KEY ({cols})"
    if kind == "UNIQUE":
        return f"UNIQUE ({cols})"
    if kind == "FOREIGN KEY":
        if not constraint.foreign_table or not constraint.foreign_columns:
            return "/* TODO: Foreign key missing reference table/column */"
        clause = (
            f"FOREIGN KEY ({cols}) REFERENCES "
            f"{qualify(target_schema, constraint.foreign_table)}({', '.join(constraint.foreign_columns)})"
        )
        if constraint.on_update and constraint.on_update.upper() != "NO ACTION":
            clause += f" ON UPDATE {constraint.on_update}"
        if constraint.on_delete and constraint.on_delete.upper() != "NO ACTION":
            clause += f" ON DELETE {constraint.on_delete}"
        return clause
    if kind == "CHECK":
        if not constraint.check_expr:
            return "/* TODO: CHECK constraint missing condition */"
        return f"CHECK ({rewrite_qualifier(constraint.check_expr, source_schema, target_schema)})"
    if kind == "EXCLUDE":
        return f"EXCLUDE ({cols})"
    return f"/* TODO: Unsupported constraint type: {constraint.kind} */"


def is_usable_name(name: Optional[str]) -> bool:
    """Return True if *name* can be reused verbatim as a constraint name."""
    return bool(name) and len(name or "") <= MAX_IDENTIFIER_LENGTH and bool(_VALID_NAME.match(name or ""))


def constraint_name(constraint: ConstraintDescriptor, namer: BackupNamer) -> str:
    """Return the catalog name, or a descriptive one when it is not usable.

    Catalog-generated names (numeric prefixes, over-long names) are replaced
    by ``<table>_pkey``, ``<table>_<cols>_key``, ``<table>_<cols>_fkey`` or
    ``<table>_<cols>_check_<ts>``.
    """
    if is_usable_name(constraint.name):
        return constraint.name

    col_part = "_".join(constraint.columns).lower() or "col"
    kind = (constraint.kind or "").upper()
    if kind == "PRIMARY KEY":
        return f"{constraint.table}_pkey"
    if kind == "UNIQUE":
        return f"{constraint.table}_{col_part}_key"
    if kind == "FOREIGN KEY":
        return f"{constraint.table}_{col_part}_fkey"
    if kind == "CHECK":
        return f"{constraint.table}_{col_part}_check_{namer.timestamp()}"
    suffix = re.sub(r"\s+", "_", (constraint.kind or "unknown").lower())
    return f"{constraint.table}_{col_part}_{suffix}"


class ConstraintComparator(ObjectComparator[ConstraintDescriptor]):
    """Constraints matched by ``(table, name)``."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: ConstraintDescriptor) -> Hashable:
        return (item.table, item.name)

    def changed(self, source: ConstraintDescriptor, target: ConstraintDescriptor) -> bool:
        ctx = self.ctx
        return (
            (source.kind or "").upper() != (target.kind or "").upper()
            or source.columns != target.columns
            or source.foreign_table != target.foreign_table
            or source.foreign_columns != target.foreign_columns
            or source.on_update != target.on_update
            or source.on_delete != target.on_delete
            or rewrite_qualifier(source.check_expr, ctx.source_schema, ctx.target_schema) != target.check_expr
        )

    def add_statement(self, item: ConstraintDescriptor) -> str:
        ctx = self.ctx
        return (
            f"ALTER TABLE {qualify(ctx.target_schema, item.table)} "
            f"ADD CONSTRAINT {constraint_name(item, ctx.namer)} "
            f"{constraint_clause(item, ctx.source_schema, ctx.target_schema)};"
        )

    def render_drop(self, item: ConstraintDescriptor) -> List[str]:
        ctx = self.ctx
        return [
            f"-- Constraint {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            f"ALTER TABLE {qualify(ctx.target_schema, item.table)} DROP CONSTRAINT IF EXISTS {quote_ident(item.name)};",
        ]

    def render_create(self, item: ConstraintDescriptor) -> List[str]:
        return [
            f"-- Creating constraint {item.name} in {self.ctx.target_schema}",
            self.add_statement(item),
            "",
        ]

    def render_update(self, source: ConstraintDescriptor, target: ConstraintDescriptor) -> List[str]:
        ctx = self.ctx
        old_name = ctx.namer.backup_name(target.name, suffix="old")
        return [
            f"-- Constraint {source.name} has changed, updating in {ctx.target_schema}",
            f"-- Renaming old constraint to {old_name} for manual review",
            f"ALTER TABLE {qualify(ctx.target_schema, target.table)} RENAME CONSTRAINT {quote_ident(target.name)} TO {quote_ident(old_name)};",
            self.add_statement(source),
            "",
        ]


def generate_constraint_operations(ctx: SyncContext) -> List[str]:
    """Compare table constraints of both schemas."""
    table_filter = ctx.options.table_filter
    source = apply_table_filter(collect_constraints(ctx.source, ctx.source_schema), table_filter, lambda c: c.table)
    target = apply_table_filter(collect_constraints(ctx.target, ctx.target_schema), table_filter, lambda c: c.table)

    comparator = ConstraintComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info(
        "Constraints: %d to create, %d to drop, %d to update",
        len(plan.to_create),
        len(plan.to_drop),
        len(plan.to_update),
    )
    return comparator.render(plan)
