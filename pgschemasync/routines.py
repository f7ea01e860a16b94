"""
routines
========

Function and procedure comparator.

Routines are matched by ``(name, kind)``; overloads collapse to the first
catalog entry. Creating a routine requires a second, targeted fetch of its full
definition (:func:`~pgschemasync.collectors.collect_routine_definition`).

- extra routine: renamed to ``<name>_dropped_<ts>`` with a manual-drop reminder
- missing routine: the source definition, re-qualified for the target
- changed routine: rename the old one to ``<name>_old_<ts>``, then create
"""

from __future__ import annotations

import logging
from typing import Hashable, List, Optional

from .collectors import collect_routine_definition, collect_routines
from .diffing import ObjectComparator
from .formatting import qualify, rewrite_qualifier
from .models import RoutineDescriptor, SyncContext

logger = logging.getLogger(__name__)


def routine_keyword(routine: RoutineDescriptor) -> str:
    return "PROCEDURE" if (routine.kind or "").upper() == "PROCEDURE" else "FUNCTION"


def routine_signature(schema: str, routine: RoutineDescriptor) -> str:
    """Return ``schema.name(args)``; the argument list is omitted when unknown."""
    name = qualify(schema, routine.name)
    if routine.arguments is None:
        return name
    return f"{name}({routine.arguments})"


def render_definition(
    definition: Optional[str],
    routine: RoutineDescriptor,
    source_schema: str,
    target_schema: str,
) -> List[str]:
    """Turn a fetched definition into script lines.

    A full ``CREATE`` statement is re-qualified and terminated with ``;``. A
    bare body (no ``CREATE`` header) cannot be replayed safely and is emitted
    as a commented block for manual review.
    """
    keyword = routine_keyword(routine)
    if not definition or not definition.strip():
        return [f"-- TODO: Could not retrieve definition for {keyword} {routine.name}"]

    text = rewrite_qualifier(definition.strip(), source_schema, target_schema) or ""
    if text.upper().startswith("CREATE"):
        if not text.endswith(";"):
            text += ";"
        return [text]

    lines = [f"-- TODO: Only the body of {keyword} {qualify(target_schema, routine.name)} is available; recreate it manually"]
    lines.extend(f"-- {line}".rstrip() for line in text.splitlines())
    return lines


class RoutineComparator(ObjectComparator[RoutineDescriptor]):
    """Functions and procedures matched by ``(name, kind)``."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: RoutineDescriptor) -> Hashable:
        return (item.name, routine_keyword(item))

    def changed(self, source: RoutineDescriptor, target: RoutineDescriptor) -> bool:
        ctx = self.ctx
        return (
            routine_keyword(source) != routine_keyword(target)
            or source.data_type != target.data_type
            or rewrite_qualifier(source.arguments, ctx.source_schema, ctx.target_schema) != target.arguments
            or rewrite_qualifier(source.body, ctx.source_schema, ctx.target_schema) != target.body
        )

    def definition_lines(self, item: RoutineDescriptor) -> List[str]:
        ctx = self.ctx
        definition = collect_routine_definition(ctx.source, ctx.source_schema, item)
        return render_definition(definition, item, ctx.source_schema, ctx.target_schema)

    def render_drop(self, item: RoutineDescriptor) -> List[str]:
        ctx = self.ctx
        keyword = routine_keyword(item)
        backup = ctx.namer.backup_name(item.name)
        return [
            f"-- {keyword} {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            f"-- Renaming {keyword.lower()} to preserve before manual drop",
            f"ALTER {keyword} {routine_signature(ctx.target_schema, item)} RENAME TO {backup};",
            f"-- TODO: Manually drop {keyword.lower()} {qualify(ctx.target_schema, backup)} after confirming it's no longer needed",
        ]

    def render_create(self, item: RoutineDescriptor) -> List[str]:
        keyword = routine_keyword(item)
        return [f"-- Creating {keyword.lower()} {item.name} in {self.ctx.target_schema}", *self.definition_lines(item), ""]

    def render_update(self, source: RoutineDescriptor, target: RoutineDescriptor) -> List[str]:
        ctx = self.ctx
        keyword = routine_keyword(target)
        old_name = ctx.namer.backup_name(target.name, suffix="old")
        return [
            f"-- {keyword.lower()} {source.name} has changed, updating in {ctx.target_schema}",
            f"-- Renaming old {keyword.lower()} to {old_name} for manual review",
            f"ALTER {keyword} {routine_signature(ctx.target_schema, target)} RENAME TO {old_name};",
            *self.definition_lines(source),
            "",
        ]


def generate_routine_operations(ctx: SyncContext) -> List[str]:
    """Compare functions and procedures of both schemas."""
    source = collect_routines(ctx.source, ctx.source_schema)
    target = collect_routines(ctx.target, ctx.target_schema)

    comparator = RoutineComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info(
        "Routines: %d to create, %d to rename, %d to update",
        len(plan.to_create),
        len(plan.to_drop),
        len(plan.to_update),
    )
    return comparator.render(plan)
