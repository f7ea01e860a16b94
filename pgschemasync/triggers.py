"""
triggers
========

Trigger comparator.

Catalog rows (one per DML event) are grouped into one
:class:`~pgschemasync.models.TriggerDescriptor` per ``(table, name)`` before
comparison, so a trigger firing on ``INSERT OR UPDATE`` renders as a single
``CREATE TRIGGER`` statement.

- extra trigger: ``DROP TRIGGER IF EXISTS`` (a trigger holds no data)
- missing trigger: ``CREATE TRIGGER`` with the action re-qualified
- changed trigger: rename the old one to ``<name>_old_<ts>``, then create
"""

from __future__ import annotations

import logging
from typing import Hashable, List

from .collectors import apply_table_filter, collect_triggers
from .diffing import ObjectComparator
from .formatting import qualify, rewrite_qualifier
from .models import SyncContext, TriggerDescriptor

logger = logging.getLogger(__name__)


def render_create_trigger(trigger: TriggerDescriptor, source_schema: str, target_schema: str) -> str:
    """Return a multi-line ``CREATE TRIGGER`` statement for *target_schema*."""
    events = " OR ".join(trigger.events)
    lines = [
        f"CREATE TRIGGER {trigger.name}",
        f"  {trigger.timing or ''} {events}".rstrip(),
        f"  ON {qualify(target_schema, trigger.table)}",
    ]
    if trigger.orientation:
        lines.append(f"  FOR EACH {trigger.orientation}")
    if trigger.condition:
        lines.append(f"  WHEN ({rewrite_qualifier(trigger.condition, source_schema, target_schema)})")
    action = rewrite_qualifier(trigger.action_statement, source_schema, target_schema)
    if action:
        lines.append(f"  {action.rstrip().rstrip(';')};")
    else:
        lines.append("  -- TODO: Could not retrieve action statement for trigger")
    return "\n".join(lines)


class TriggerComparator(ObjectComparator[TriggerDescriptor]):
    """Grouped triggers matched by ``(table, name)``."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: TriggerDescriptor) -> Hashable:
        return (item.table, item.name)

    def changed(self, source: TriggerDescriptor, target: TriggerDescriptor) -> bool:
        ctx = self.ctx
        return (
            tuple(sorted(source.events)) != tuple(sorted(target.events))
            or source.timing != target.timing
            or rewrite_qualifier(source.action_statement, ctx.source_schema, ctx.target_schema) != target.action_statement
            or source.orientation != target.orientation
            or rewrite_qualifier(source.condition, ctx.source_schema, ctx.target_schema) != target.condition
        )

    def render_drop(self, item: TriggerDescriptor) -> List[str]:
        ctx = self.ctx
        return [
            f"-- Trigger {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            f"DROP TRIGGER IF EXISTS {item.name} ON {qualify(ctx.target_schema, item.table)};",
        ]

    def render_create(self, item: TriggerDescriptor) -> List[str]:
        ctx = self.ctx
        return [
            f"-- Creating trigger {item.name} in {ctx.target_schema}",
            render_create_trigger(item, ctx.source_schema, ctx.target_schema),
            "",
        ]

    def render_update(self, source: TriggerDescriptor, target: TriggerDescriptor) -> List[str]:
        ctx = self.ctx
        old_name = ctx.namer.backup_name(target.name, suffix="old")
        return [
            f"-- Trigger {source.name} has changed, updating in {ctx.target_schema}",
            f"-- Renaming old trigger to {old_name} for manual review",
            f"ALTER TRIGGER {target.name} ON {qualify(ctx.target_schema, target.table)} RENAME TO {old_name};",
            render_create_trigger(source, ctx.source_schema, ctx.target_schema),
            "",
        ]


def generate_trigger_operations(ctx: SyncContext) -> List[str]:
    """Compare triggers of both schemas."""
    table_filter = ctx.options.table_filter
    source = apply_table_filter(collect_triggers(ctx.source, ctx.source_schema), table_filter, lambda t: t.table)
    target = apply_table_filter(collect_triggers(ctx.target, ctx.target_schema), table_filter, lambda t: t.table)

    comparator = TriggerComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info(
        "Triggers: %d to create, %d to drop, %d to update",
        len(plan.to_create),
        len(plan.to_drop),
        len(plan.to_update),
    )
    return comparator.render(plan)
