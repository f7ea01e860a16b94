"""
models
======

Read-only snapshot descriptors for each catalog object kind.

Descriptors are frozen dataclasses built by :mod:`pgschemasync.collectors`.
Catalog fields that may come back NULL (for example when the connected role
lacks privileges on an object) are typed ``Optional`` so renderers can decide
explicitly what to emit when they are missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from .connection import QueryRunner
    from .formatting import BackupNamer


@dataclass(frozen=True)
class TableDescriptor:
    """A base table in one schema."""

    name: str


@dataclass(frozen=True)
class ColumnDescriptor:
    """A column as reported by ``information_schema.columns``."""

    table: str
    name: Optional[str]
    data_type: Optional[str]
    max_length: Optional[int] = None
    nullable: bool = True
    default: Optional[str] = None
    ordinal_position: int = 0

    @property
    def effective_type(self) -> str:
        """Data type including the length modifier, e.g. ``character varying(255)``."""
        base = self.data_type or ""
        if self.max_length:
            return f"{base}({self.max_length})"
        return base


@dataclass(frozen=True)
class ConstraintDescriptor:
    """A table constraint with its participating columns folded together."""

    table: str
    name: str
    kind: Optional[str]
    columns: Tuple[str, ...] = ()
    foreign_table: Optional[str] = None
    foreign_columns: Tuple[str, ...] = ()
    on_update: Optional[str] = None
    on_delete: Optional[str] = None
    check_expr: Optional[str] = None

    @property
    def column(self) -> Optional[str]:
        return self.columns[0] if self.columns else None


@dataclass(frozen=True)
class IndexDescriptor:
    """An index and its catalog-rendered ``CREATE INDEX`` text."""

    schema: str
    table: str
    name: str
    definition: Optional[str] = None


@dataclass(frozen=True)
class TriggerDescriptor:
    """A trigger, grouped so that one descriptor covers all of its events."""

    name: str
    table: str
    events: Tuple[str, ...]
    timing: Optional[str]
    action_statement: Optional[str] = None
    orientation: Optional[str] = None
    condition: Optional[str] = None


@dataclass(frozen=True)
class RoutineDescriptor:
    """A stored function or procedure."""

    name: str
    kind: str  # "FUNCTION" | "PROCEDURE"
    specific_name: Optional[str] = None
    data_type: Optional[str] = None
    arguments: Optional[str] = None
    body: Optional[str] = None


@dataclass(frozen=True)
class SequenceDescriptor:
    """A sequence; compared by presence only."""

    name: str
    data_type: Optional[str] = None
    start: Optional[str] = None
    minimum: Optional[str] = None
    maximum: Optional[str] = None
    increment: Optional[str] = None
    cycle: bool = False


@dataclass(frozen=True)
class TableFilter:
    """Include/exclude patterns for table selection."""

    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    case_sensitive: bool = False


@dataclass(frozen=True)
class SyncOptions:
    """The options record the comparison core reads."""

    source_schema: str
    target_schema: str
    table_filter: TableFilter = field(default_factory=TableFilter)


@dataclass
class SyncContext:
    """Everything a comparator needs for one run.

    Attributes:
        source: Query handle for the source database.
        target: Query handle for the target database.
        options: Schema names and table filter.
        namer: Backup/rename name generator shared by every comparator so
            that generated names stay distinct within the run.
    """

    source: "QueryRunner"
    target: "QueryRunner"
    options: SyncOptions
    namer: "BackupNamer"

    @property
    def source_schema(self) -> str:
        return self.options.source_schema

    @property
    def target_schema(self) -> str:
        return self.options.target_schema
