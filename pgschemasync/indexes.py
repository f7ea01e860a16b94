"""
indexes
=======

Index comparator.

Indexes are matched by name only; a name present on both sides is treated as
identical. Extra target indexes are dropped directly (an index holds no data
and can be rebuilt from its definition). Missing indexes are recreated from
the source's catalog-rendered ``CREATE INDEX`` text with the schema
qualifiers rewritten.

Definition rewrite
------------------
:func:`rewrite_index_definition` tries, in order:

1. a pattern match on ``CREATE [UNIQUE] INDEX [<schema>.]<name> ON [ONLY]
   <schema>.<table> ...``, swapping the qualifiers;
2. a token walk that finds the index token after ``INDEX`` and the table
   token after ``ON`` and re-qualifies the table;
3. the original text unchanged.

In every case the remaining source qualifiers (expression columns, function
calls, partial index predicates) go through
:func:`~pgschemasync.formatting.rewrite_qualifier`.

Every result ends with exactly one ``;``.
"""

from __future__ import annotations

import logging
import re
from typing import Hashable, List, Optional

from .collectors import apply_table_filter, collect_indexes
from .diffing import ObjectComparator
from .formatting import qualify, rewrite_qualifier
from .models import IndexDescriptor, SyncContext

logger = logging.getLogger(__name__)

_IDENT = r'(?:"(?:[^"]|"")+"|[^\s."(]+)'

_INDEX_DEF = re.compile(
    r"^\s*CREATE\s+(?P<unique>UNIQUE\s+)?INDEX\s+"
    r"(?P<modifiers>(?:CONCURRENTLY\s+)?(?:IF\s+NOT\s+EXISTS\s+)?)"
    r"(?:(?P<index_schema>" + _IDENT + r")\.)?(?P<index>" + _IDENT + r")\s+"
    r"ON\s+(?P<only>ONLY\s+)?"
    r"(?P<table_schema>" + _IDENT + r")\.(?P<table>" + _IDENT + r")"
    r"(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL,
)


def _terminate(statement: str) -> str:
    return statement.rstrip().rstrip(";").rstrip() + ";"


def _rewrite_by_pattern(definition: str, target_schema: str, source_schema: Optional[str]) -> Optional[str]:
    m = _INDEX_DEF.match(definition)
    if not m:
        return None
    index = m.group("index")
    if m.group("index_schema"):
        index = f"{target_schema}.{index}"
    rest = m.group("rest")
    if source_schema:
        rest = rewrite_qualifier(rest, source_schema, target_schema)
    return (
        f"CREATE {'UNIQUE ' if m.group('unique') else ''}INDEX {m.group('modifiers')}{index} "
        f"ON {'ONLY ' if m.group('only') else ''}{target_schema}.{m.group('table')}{rest}"
    )


def _rewrite_by_tokens(definition: str, target_schema: str, source_schema: Optional[str]) -> Optional[str]:
    tokens = definition.split()
    upper = [t.upper() for t in tokens]
    if "INDEX" not in upper:
        return None
    idx = upper.index("INDEX")
    # ON has to follow INDEX; "COMMENT ON INDEX ..." is not a CREATE INDEX
    if "ON" not in upper[idx + 1 :]:
        return None
    on = upper.index("ON", idx + 1)
    if on == idx + 1 or on + 1 >= len(tokens):
        return None

    table_pos = on + 1
    if upper[table_pos] == "ONLY" and table_pos + 1 < len(tokens):
        table_pos += 1
    table_token = tokens[table_pos]
    table, paren, tail = table_token.partition("(")
    if not table:
        return None
    bare = table.rsplit(".", 1)[-1]
    tokens[table_pos] = f"{target_schema}.{bare}{paren}{tail}"
    statement = " ".join(tokens)
    if source_schema:
        statement = rewrite_qualifier(statement, source_schema, target_schema)
    return statement


def rewrite_index_definition(
    definition: Optional[str],
    index_name: str,
    target_schema: str,
    source_schema: Optional[str] = None,
) -> str:
    """Return the ``CREATE INDEX`` statement re-qualified for *target_schema*.

    With *source_schema* set, ``source_schema.`` qualifiers in the column
    list, index expressions and ``WHERE`` predicate are rewritten too.
    """
    if not definition:
        return f"-- TODO: Could not retrieve index definition for {index_name}"
    for rewrite in (_rewrite_by_pattern, _rewrite_by_tokens):
        statement = rewrite(definition, target_schema, source_schema)
        if statement is not None:
            return _terminate(statement)
    logger.warning("Could not parse definition of index %s; passing it through", index_name)
    if source_schema:
        definition = rewrite_qualifier(definition, source_schema, target_schema)
    return _terminate(definition)


class IndexComparator(ObjectComparator[IndexDescriptor]):
    """Indexes matched by name, no update phase."""

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    def key(self, item: IndexDescriptor) -> Hashable:
        return item.name

    def render_drop(self, item: IndexDescriptor) -> List[str]:
        ctx = self.ctx
        return [
            f"-- Index {item.name} exists in {ctx.target_schema} but not in {ctx.source_schema}",
            f"DROP INDEX IF EXISTS {qualify(ctx.target_schema, item.name)};",
        ]

    def render_create(self, item: IndexDescriptor) -> List[str]:
        return [
            f"-- Creating index {item.name} in {self.ctx.target_schema}",
            rewrite_index_definition(item.definition, item.name, self.ctx.target_schema, self.ctx.source_schema),
            "",
        ]


def generate_index_operations(ctx: SyncContext) -> List[str]:
    """Compare indexes of both schemas."""
    table_filter = ctx.options.table_filter
    source = apply_table_filter(collect_indexes(ctx.source, ctx.source_schema), table_filter, lambda i: i.table)
    target = apply_table_filter(collect_indexes(ctx.target, ctx.target_schema), table_filter, lambda i: i.table)

    comparator = IndexComparator(ctx)
    plan = comparator.diff(source, target)
    logger.info("Indexes: %d to create, %d to drop", len(plan.to_create), len(plan.to_drop))
    return comparator.render(plan)
