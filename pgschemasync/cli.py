#!/usr/bin/env python3
"""
cli
===

Compare two PostgreSQL schemas and print (or save) a DDL script that brings the
target schema in line with the source schema.

The script is meant for human review: nothing is executed against either
database, and both connections are opened read-only.

Table filtering
---------------

You can restrict which tables are compared using include/exclude patterns:

- include: keep only tables that match ANY include pattern
- exclude: drop tables that match ANY exclude pattern

Patterns support:
- SQL LIKE wildcards: ``%`` and ``_`` (default)
- Regex patterns if you prefix with ``re:``

Matching is case-insensitive unless ``case_sensitive: true`` is set.

Configuration
-------------

Example ``config.yml``::

    source:
      host: localhost
      port: 5432
      database: app
      user: reviewer
      schema: dev

    target:
      host: db.internal
      database: app
      user: reviewer
      schema: prod

    output:
      dir: out
      save: true
      summary: out/SUMMARY.md

    table_filter:
      include: ["orders%", "users"]
      exclude: ["tmp_%", "re:^zz_"]
      case_sensitive: false

Every connection field can also come from an environment variable named
``PGSYNC_<SIDE>_<FIELD>`` (for example ``PGSYNC_TARGET_PASSWORD``); a ``.env``
file in the working directory is loaded first. Environment variables win over
CLI flags, which win over the config file.

CLI Usage
---------

Print the script::

    pg-schema-sync --config config.yml

Write to a named file::

    pg-schema-sync --config config.yml --output sync.sql

Auto-named file under ``--out-dir`` plus a Markdown summary::

    pg-schema-sync --config config.yml --save --summary out/SUMMARY.md

Override a single parameter from config::

    pg-schema-sync --config config.yml --target-schema staging

Dump one schema's DDL (schema.sql, procs.sql, triggers.sql) instead of comparing::

    pg-schema-sync --config config.yml --gen --out-dir output
    pg-schema-sync --config config.yml --gen target --procs-only --dry-run
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
import yaml
from dotenv import find_dotenv, load_dotenv

from . import __version__
from .connection import DEFAULT_CONNECT_TIMEOUT_SECONDS, PgTarget, SchemaNotFoundError
from .generate import DEFAULT_GEN_DIR, GenOptions, format_for_stdout, run_gen, write_generated
from .models import SyncOptions, TableFilter
from .orchestrator import run_sync
from .reporting import generate_output_filename, generate_summary_md, write_script

logger = logging.getLogger(__name__)

ENV_PREFIX = "PGSYNC"
SIDES = ("source", "target")
TARGET_FIELDS = ("host", "port", "database", "user", "password", "schema", "connect_timeout")
REQUIRED_FIELDS = ("database", "user", "schema")
DEFAULTS: Dict[str, Any] = {
    "host": "localhost",
    "port": 5432,
    "password": "",
    "connect_timeout": DEFAULT_CONNECT_TIMEOUT_SECONDS,
}


# -----------------------------
# Config helpers
# -----------------------------
def load_config(path: Path) -> Dict[str, Any]:
    """Load YAML config file; an empty file yields an empty dict."""
    if not path.exists():
        raise SystemExit(f"ERROR: config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_get(d: Dict[str, Any], keys: List[str], default: Any = None) -> Any:
    """Safely get nested dict value with default."""
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def get_env_var(side: str, field: str) -> Optional[str]:
    """Return ``PGSYNC_<SIDE>_<FIELD>`` or None when unset or empty."""
    value = os.environ.get(f"{ENV_PREFIX}_{side.upper()}_{field.upper()}")
    return value or None


def _as_int(value: Any, side: str, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SystemExit(f"ERROR: {side}.{field} must be an integer, got {value!r}") from None


def build_target(cfg: Dict[str, Any], side: str, overrides: Dict[str, Any]) -> PgTarget:
    """Build a :class:`PgTarget` for *side* (``source`` or ``target``).

    Resolution order per field: environment variable, CLI override
    (``overrides["<side>_<field>"]``), config block, default.
    """
    scfg = cfg.get(side, {}) or {}
    values: Dict[str, Any] = {}
    for field in TARGET_FIELDS:
        value = get_env_var(side, field)
        if value is None:
            value = overrides.get(f"{side}_{field}")
        if value is None or value == "":
            value = scfg.get(field)
        if value is None or value == "":
            value = DEFAULTS.get(field)
        if field in REQUIRED_FIELDS and not value:
            raise SystemExit(
                f"ERROR: missing {side}.{field}. Set it in the config file, "
                f"via {ENV_PREFIX}_{side.upper()}_{field.upper()}, or with --{side}-{field.replace('_', '-')}"
            )
        values[field] = value

    return PgTarget(
        host=str(values["host"]),
        port=_as_int(values["port"], side, "port"),
        database=str(values["database"]),
        user=str(values["user"]),
        password=str(values["password"] or ""),
        schema=str(values["schema"]),
        label=side,
        connect_timeout=_as_int(values["connect_timeout"], side, "connect_timeout"),
    )


def read_table_filter(cfg: Dict[str, Any], args: argparse.Namespace) -> TableFilter:
    """Read include/exclude patterns; CLI patterns extend config patterns."""
    cfg_includes = deep_get(cfg, ["table_filter", "include"], []) or []
    cfg_excludes = deep_get(cfg, ["table_filter", "exclude"], []) or []
    case_sensitive = bool(deep_get(cfg, ["table_filter", "case_sensitive"], False))
    return TableFilter(
        include=list(cfg_includes) + list(getattr(args, "include", None) or []),
        exclude=list(cfg_excludes) + list(getattr(args, "exclude", None) or []),
        case_sensitive=case_sensitive,
    )


def resolve_output_path(cfg: Dict[str, Any], args: argparse.Namespace, source_schema: str, target_schema: str) -> Optional[Path]:
    """Return where to write the script, or None to print it.

    ``--dry-run`` always prints. An explicit path (``--output`` or
    ``output.path``) wins over ``--save`` / ``output.save``, which picks an
    auto-generated name under the output directory.
    """
    if args.dry_run:
        return None
    explicit = args.output or deep_get(cfg, ["output", "path"])
    if explicit:
        return Path(explicit)
    if args.save or bool(deep_get(cfg, ["output", "save"], False)):
        out_dir = Path(args.out_dir or deep_get(cfg, ["output", "dir"], ".") or ".")
        return out_dir / generate_output_filename(source_schema, target_schema)
    return None


# -----------------------------
# Entry point
# -----------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pg-schema-sync",
        description="Generate a reviewable DDL script that aligns a target PostgreSQL schema with a source schema.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--config", default=None, help="Path to a YAML config file")
    ap.add_argument("--output", default=None, help="Write the script to this file")
    ap.add_argument("--save", action="store_true", help="Write the script to an auto-named file under --out-dir")
    ap.add_argument("--out-dir", default=None, help="Directory for --save (default: output.dir or .) and --gen (default: output.dir or ./output)")
    ap.add_argument("--dry-run", action="store_true", help="Print the script to stdout even if an output file is configured")
    ap.add_argument("--summary", default=None, help="Write a Markdown summary of statement counts to this file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    ap.add_argument(
        "--gen",
        nargs="?",
        const="source",
        choices=SIDES,
        default=None,
        help="Dump the DDL of one side (default: source) to schema.sql, procs.sql and triggers.sql instead of comparing",
    )
    only = ap.add_mutually_exclusive_group()
    only.add_argument("--schema-only", action="store_true", help="With --gen: only schema.sql")
    only.add_argument("--procs-only", action="store_true", help="With --gen: only procs.sql")
    only.add_argument("--triggers-only", action="store_true", help="With --gen: only triggers.sql")

    ap.add_argument(
        "--include",
        action="append",
        default=[],
        help="Include table pattern (repeatable). SQL LIKE (%% _) or regex via re:... e.g. --include 'orders%%'",
    )
    ap.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Exclude table pattern (repeatable). SQL LIKE (%% _) or regex via re:... e.g. --exclude 'tmp_%%'",
    )

    for side in SIDES:
        for field in TARGET_FIELDS:
            ap.add_argument(f"--{side}-{field.replace('_', '-')}", dest=f"{side}_{field}", default=None)
    return ap


def run_gen_command(cfg: Dict[str, Any], args: argparse.Namespace, overrides: Dict[str, Any]) -> int:
    """Handle ``--gen``: dump one side's DDL to files (or stdout with ``--dry-run``)."""
    side = build_target(cfg, args.gen, overrides)
    options = GenOptions(
        schema_only=args.schema_only,
        procs_only=args.procs_only,
        triggers_only=args.triggers_only,
        table_filter=read_table_filter(cfg, args),
    )
    try:
        files = run_gen(side, options)
    except (psycopg2.Error, SchemaNotFoundError) as exc:
        logger.error("Generation failed: %s", str(exc).strip() or exc.__class__.__name__)
        return 1

    if args.dry_run:
        sys.stdout.write(format_for_stdout(files))
    else:
        out_dir = Path(args.out_dir or deep_get(cfg, ["output", "dir"]) or DEFAULT_GEN_DIR)
        write_generated(files, out_dir)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI entry-point; returns the process exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    load_dotenv(find_dotenv(usecwd=True))

    cfg = load_config(Path(args.config).resolve()) if args.config else {}
    overrides = {f"{side}_{field}": getattr(args, f"{side}_{field}") for side in SIDES for field in TARGET_FIELDS}

    if args.gen:
        return run_gen_command(cfg, args, overrides)

    source = build_target(cfg, "source", overrides)
    target = build_target(cfg, "target", overrides)
    options = SyncOptions(
        source_schema=source.schema,
        target_schema=target.schema,
        table_filter=read_table_filter(cfg, args),
    )
    logger.info(
        "Table filters: include=%s exclude=%s",
        options.table_filter.include or "[]",
        options.table_filter.exclude or "[]",
    )

    try:
        script = run_sync(source, target, options)
    except (psycopg2.Error, SchemaNotFoundError) as exc:
        logger.error("Schema sync failed: %s", str(exc).strip() or exc.__class__.__name__)
        return 1

    out_path = resolve_output_path(cfg, args, source.schema, target.schema)
    if out_path is None:
        sys.stdout.write(script.text + "\n")
    else:
        write_script(out_path, script.text)

    summary = args.summary or deep_get(cfg, ["output", "summary"])
    if summary:
        header = [
            f"- Config: `{Path(args.config).name}`" if args.config else "- Config: (none)",
            f"- {source.describe()}",
            f"- {target.describe()}",
        ]
        summary_path = generate_summary_md(Path(summary), header, script.statement_counts(), script_path=out_path)
        logger.info("Summary written to: %s", summary_path)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
