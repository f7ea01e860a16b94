"""Sequence comparator: sequences are compared by presence only."""

from __future__ import annotations

import logging
from typing import Hashable, List

from .collectors import collect_sequences
from .diffing import PHASE_CREATE, PHASE_DROP, ObjectComparator
from .formatting import qualify
from .models import SequenceDescriptor, SyncContext

logger = logging.getLogger(__name__)


def render_create_sequence(sequence: SequenceDescriptor, target_schema: str) -> str:
    parts = [f"CREATE SEQUENCE IF NOT EXISTS {qualify(target_schema, sequence.name)}"]
    if sequence.data_type:
        parts.append(f"AS {sequence.data_type}")
    if sequence.increment:
        parts.append(f"INCREMENT BY {sequence.increment}")
    if sequence.minimum:
        parts.append(f"MINVALUE {sequence.minimum}")
    if sequence.maximum:
        parts.append(f"MAXVALUE {sequence.maximum}")
    if sequence.start:
        parts.append(f"START WITH {sequence.start}")
    parts.append("CYCLE" if sequence.cycle else "NO CYCLE")
    return " ".join(parts) + ";"


class SequenceComparator(ObjectComparator[SequenceDescriptor]):
    phases = (PHASE_CREATE, PHASE_DROP)

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: SequenceDescriptor) -> Hashable:
        return item.name

    def render_create(self, item: SequenceDescriptor) -> List[str]:
        return [
            f"-- Create missing sequence {item.name}",
            render_create_sequence(item, self.ctx.target_schema),
        ]

    def render_drop(self, item: SequenceDescriptor) -> List[str]:
        # Only a reminder: the sequence may still be referenced by column defaults.
        ctx = self.ctx
        return [
            f"-- Sequence {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            f"-- TODO: Manually drop sequence {qualify(ctx.target_schema, item.name)} after confirming it's no longer needed",
        ]


def generate_sequence_operations(ctx: SyncContext) -> List[str]:
    """Compare sequences of both schemas."""
    source = collect_sequences(ctx.source, ctx.source_schema)
    target = collect_sequences(ctx.target, ctx.target_schema)

    comparator = SequenceComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info("Sequences: %d to create, %d extra", len(plan.to_create), len(plan.to_drop))
    return comparator.render(plan)
