"""
diffing
=======

Identity-set diff shared by every comparator.

This module contains:
- :func:`partition`, which splits two snapshots into drop / create / update /
  unchanged sets by identity key
- :class:`DiffPlan`, the result of a partition
- :class:`ObjectComparator`, the base class the per-kind comparators
  specialize with a key, a change predicate and three renderers

Keeping the set arithmetic here means the comparator modules only describe
*what* makes two objects different and *how* to word the DDL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Hashable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

PHASE_DROP = "drop"
PHASE_CREATE = "create"
PHASE_UPDATE = "update"


@dataclass(frozen=True)
class DiffPlan(Generic[T]):
    """Partition of two snapshots by identity key.

    Attributes:
        to_drop: Target objects whose key is absent from the source (target order).
        to_create: Source objects whose key is absent from the target (source order).
        to_update: ``(source, target)`` pairs whose significant attributes differ.
        unchanged: ``(source, target)`` pairs considered identical.
    """

    to_drop: List[T] = field(default_factory=list)
    to_create: List[T] = field(default_factory=list)
    to_update: List[Tuple[T, T]] = field(default_factory=list)
    unchanged: List[Tuple[T, T]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_drop or self.to_create or self.to_update)


def _first_by_key(items: Sequence[T], key: Callable[[T], Hashable]) -> Dict[Hashable, T]:
    out: Dict[Hashable, T] = {}
    for item in items:
        out.setdefault(key(item), item)
    return out


def partition(
    source: Sequence[T],
    target: Sequence[T],
    key: Callable[[T], Hashable],
    changed: Callable[[T, T], bool],
) -> DiffPlan[T]:
    """Split *source* and *target* into a :class:`DiffPlan`.

    Parameters
    ----------
    source, target:
        Snapshots of one object kind. Keys are expected to be unique; if a key
        repeats, the first occurrence wins.
    key:
        Identity key extractor.
    changed:
        ``changed(source_obj, target_obj)`` returns True when significant
        attributes differ.

    Returns
    -------
    DiffPlan
        The four sets are pairwise disjoint by key and together cover every key
        of both snapshots.
    """
    src = _first_by_key(source, key)
    tgt = _first_by_key(target, key)

    plan: DiffPlan[T] = DiffPlan()
    for k, obj in tgt.items():
        if k not in src:
            plan.to_drop.append(obj)
    for k, obj in src.items():
        other = tgt.get(k)
        if other is None:
            plan.to_create.append(obj)
        elif changed(obj, other):
            plan.to_update.append((obj, other))
        else:
            plan.unchanged.append((obj, other))
    return plan


class ObjectComparator(Generic[T]):
    """Base class for one object kind.

    Subclasses override :meth:`key`, :meth:`changed` and the ``render_*``
    methods; :meth:`render` walks the plan in :attr:`phases` order and
    concatenates the statement lines.
    """

    phases: Tuple[str, ...] = (PHASE_DROP, PHASE_CREATE, PHASE_UPDATE)

    def key(self, item: T) -> Hashable:
        raise NotImplementedError

    def changed(self, source: T, target: T) -> bool:
        return False

    def render_drop(self, item: T) -> List[str]:
        return []

    def render_create(self, item: T) -> List[str]:
        return []

    def render_update(self, source: T, target: T) -> List[str]:
        return []

    def diff(self, source: Sequence[T], target: Sequence[T]) -> DiffPlan[T]:
        return partition(source, target, self.key, self.changed)

    def render(self, plan: DiffPlan[T]) -> List[str]:
        lines: List[str] = []
        for phase in self.phases:
            if phase == PHASE_DROP:
                for item in plan.to_drop:
                    lines.extend(self.render_drop(item))
            elif phase == PHASE_CREATE:
                for item in plan.to_create:
                    lines.extend(self.render_create(item))
            elif phase == PHASE_UPDATE:
                for src, tgt in plan.to_update:
                    lines.extend(self.render_update(src, tgt))
            else:
                raise ValueError(f"unknown phase: {phase}")
        return lines

    def compare(self, source: Sequence[T], target: Sequence[T]) -> List[str]:
        """Partition both snapshots and render the statement lines."""
        return self.render(self.diff(source, target))
