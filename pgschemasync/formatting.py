"""
formatting
==========

Shared rendering helpers for the sync script.

This module contains:
- script header, section banners and footer
- column definition / data type formatting and NOT NULL back-fill sentinels
- backup names for the rename-before-drop policy (:class:`BackupNamer`)
- the schema qualifier rewrite applied to free-text catalog fields
  (:func:`rewrite_qualifier`)

Comparator modules import from here so every section of the script is worded
and qualified the same way.
"""

from __future__ import annotations

import re
import time
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .models import ColumnDescriptor

BANNER = "-- " + "=" * 43


# -----------------------------
# Script layout
# -----------------------------
def section_header(title: str) -> List[str]:
    """Return the banner lines that open a script section."""
    return [BANNER, f"-- {title.upper()}", BANNER]


def script_header(source_schema: str, target_schema: str, generated_at: datetime) -> List[str]:
    """Return the fixed header block of the script."""
    return [
        BANNER,
        "-- Schema Sync Script",
        f"-- Source Schema: {source_schema}",
        f"-- Target Schema: {target_schema}",
        f"-- Generated: {generated_at.isoformat(timespec='milliseconds')}",
        BANNER,
        "",
    ]


def script_footer() -> List[str]:
    """Return the fixed footer block of the script."""
    return ["", BANNER, "-- END OF SCHEMA SYNC SCRIPT", BANNER]


def count_statements(lines: Iterable[str]) -> int:
    """Count emitted SQL items, ignoring blank lines and ``--`` comments."""
    return sum(1 for line in lines if line.strip() and not line.lstrip().startswith("--"))


def qualify(schema: str, name: Optional[str]) -> str:
    """Return ``schema.name``; a missing name renders as an empty identifier."""
    return f"{schema}.{name or ''}"


# -----------------------------
# Backup names
# -----------------------------
def _epoch_millis() -> int:
    return int(time.time() * 1000)


class BackupNamer:
    """Generate rename targets for objects kept for manual review.

    Names look like ``<name>_<suffix>_<timestamp>`` where the timestamp is
    milliseconds since the epoch. Within one namer the timestamps are strictly
    increasing, so two objects renamed in the same millisecond still get
    distinct names.

    Parameters
    ----------
    clock:
        Callable returning the current time in epoch milliseconds. Tests pass a
        fixed clock to get reproducible names.
    """

    def __init__(self, clock: Callable[[], int] = _epoch_millis) -> None:
        self._clock = clock
        self._last: Optional[int] = None

    def timestamp(self) -> str:
        now = int(self._clock())
        if self._last is not None and now <= self._last:
            now = self._last + 1
        self._last = now
        return str(now)

    def backup_name(self, original: Optional[str], suffix: str = "dropped") -> str:
        return f"{original or ''}_{suffix}_{self.timestamp()}"


# -----------------------------
# Qualifier rewrite
# -----------------------------
_SCANNER = re.compile(
    r"(?P<line_comment>--[^\n]*)"
    r"|(?P<block_comment>/\*.*?\*/)"
    r"|(?P<dollar>(?<![\w$])\$(?:[A-Za-z_]\w*)?\$)"
    r"|(?P<ident>\"(?:[^\"]|\"\")*\")"
    r"|(?P<literal>'(?:[^']|'')*')",
    re.DOTALL,
)
_REGCLASS_CAST = re.compile(r"\s*::\s*regclass\b", re.IGNORECASE)


def _qualifier_pattern(schema: str) -> "re.Pattern[str]":
    return re.compile(r'(?<![\w$."])(")?' + re.escape(schema) + r'(?(1)")\.(?=[\w"$])')


def rewrite_qualifier(text: Optional[str], old_schema: str, new_schema: str) -> Optional[str]:
    """Rewrite ``old_schema`` to ``new_schema`` where it qualifies an object.

    Contract:

    - only ``old_schema.`` and ``"old_schema".`` are rewritten, and only when
      the token is not part of a longer identifier (``xold_schema.t`` and
      ``other.old_schema.t`` are left alone);
    - single-quoted string literals are not touched, except a literal cast to
      ``regclass`` (``nextval('old_schema.seq'::regclass)``), whose leading
      qualifier names an object and is rewritten;
    - ``--`` and ``/* */`` comments are copied unchanged, so an apostrophe in
      a comment does not open a literal;
    - ``$tag$`` delimiters are copied unchanged and the body between them is
      scanned as code;
    - ``None`` and empty text are returned unchanged.

    Parameters
    ----------
    text:
        Free text from the catalog (default expression, trigger action,
        routine definition, index definition).
    old_schema, new_schema:
        Schema names to swap.
    """
    if not text or not old_schema or old_schema == new_schema:
        return text

    pattern = _qualifier_pattern(old_schema)

    def swap(segment: str) -> str:
        return pattern.sub(lambda m: f"{m.group(1) or ''}{new_schema}{m.group(1) or ''}.", segment)

    out: List[str] = []
    code_start = 0
    for m in _SCANNER.finditer(text):
        if m.lastgroup == "ident":
            continue
        out.append(swap(text[code_start : m.start()]))
        token = m.group(0)
        if m.lastgroup == "literal" and _REGCLASS_CAST.match(text, m.end()):
            token = "'" + swap(token[1:-1]) + "'"
        out.append(token)
        code_start = m.end()
    out.append(swap(text[code_start:]))
    return "".join(out)


# -----------------------------
# Columns
# -----------------------------
def format_data_type(column: ColumnDescriptor) -> str:
    """Return the effective type string, e.g. ``character varying(255)``."""
    return column.effective_type


def format_column_definition(
    column: ColumnDescriptor,
    source_schema: Optional[str] = None,
    target_schema: Optional[str] = None,
    include_not_null: bool = True,
) -> str:
    """Format a column for ``CREATE TABLE`` / ``ADD COLUMN``.

    Parameters
    ----------
    column:
        Source column descriptor.
    source_schema, target_schema:
        When both are given, schema qualifiers in the default expression
        (typically ``nextval('schema.seq'::regclass)``) are rewritten to the
        target schema.
    include_not_null:
        Set to False to render the column as nullable regardless of the
        descriptor (used for the add-then-backfill sequence).
    """
    parts = [f'"{column.name or ""}"', format_data_type(column)]
    if include_not_null and not column.nullable:
        parts.append("NOT NULL")
    if column.default:
        default = column.default
        if source_schema and target_schema:
            default = rewrite_qualifier(default, source_schema, target_schema)
        parts.append(f"DEFAULT {default}")
    return " ".join(p for p in parts if p)


def describe_column(column: ColumnDescriptor) -> str:
    """One-line human description used in review comments."""
    parts = [format_data_type(column)]
    if not column.nullable:
        parts.append("NOT NULL")
    if column.default:
        parts.append(f"DEFAULT {column.default}")
    return " ".join(p for p in parts if p)


_TEXT_TYPES = {"character varying", "varchar", "character", "char", "bpchar", "text", "citext", "name"}
_NUMERIC_TYPES = {
    "smallint", "integer", "bigint", "int", "int2", "int4", "int8",
    "numeric", "decimal", "real", "double precision", "float4", "float8",
    "smallserial", "serial", "bigserial", "money",
}


def sentinel_default(data_type: Optional[str]) -> str:
    """Return the value used to back-fill existing rows before ``SET NOT NULL``."""
    dt = (data_type or "").strip().lower()
    if dt in _TEXT_TYPES:
        return "''"
    if dt in _NUMERIC_TYPES:
        return "0"
    if dt in ("boolean", "bool"):
        return "false"
    if dt.startswith("timestamp"):
        return "CURRENT_TIMESTAMP"
    if dt == "date":
        return "CURRENT_DATE"
    if dt.startswith("time"):
        return "CURRENT_TIME"
    if dt == "jsonb":
        return "'{}'::jsonb"
    if dt == "json":
        return "'{}'::json"
    return "NULL"
