"""
reporting
=========

Script output and Markdown report generation.

This module writes the generated script to disk and produces a short summary
report (statement counts per section, with a link to the script) so a reviewer
can see the size of a sync at a glance.

Primary API
-----------
- :func:`generate_output_filename`
- :func:`write_script`
- :func:`generate_summary_md`
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
import time
from pathlib import Path
from typing import List, Optional, Tuple

from .utils import safe_name, write_text

logger = logging.getLogger(__name__)


def generate_output_filename(
    source_schema: str,
    target_schema: str,
    prefix: str = "schema-sync",
    now_ms: Optional[int] = None,
) -> str:
    """Return ``<prefix>_<source>-to-<target>_<epoch ms>.sql``.

    Examples
    --------
    >>> generate_output_filename("dev", "prod", now_ms=1700000000000)
    'schema-sync_dev-to-prod_1700000000000.sql'
    """
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}_{safe_name(source_schema)}-to-{safe_name(target_schema)}_{stamp}.sql"


def write_script(path: Path, script: str) -> Path:
    """Write *script* to *path* (parents created) and return the path."""
    write_text(path, script if script.endswith("\n") else script + "\n")
    logger.info("Schema sync script saved to: %s", path)
    return path


def rel_link(from_file: Path, to_file: Path) -> str:
    """Create a portable relative link for Markdown."""
    return os.path.relpath(to_file, start=from_file.parent).replace("\\", "/")


def md_anchor(title: str) -> str:
    """Create an approximate GitHub-style markdown anchor from a section title."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def generate_summary_md(
    summary_path: Path,
    header_lines: List[str],
    sections: List[Tuple[str, int]],
    script_path: Optional[Path] = None,
) -> Path:
    """Generate a Markdown summary of a sync script.

    Parameters
    ----------
    summary_path:
        Where to write the report.
    header_lines:
        Bullet-style lines to include near the top (config/targets).
    sections:
        ``(title, statement count)`` tuples in script order.
    script_path:
        The written script, linked relatively when given.

    Returns
    -------
    pathlib.Path
        The path to the generated summary.
    """
    now = dt.datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    lines: List[str] = []
    lines.append("# Schema Sync Summary\n\n")
    lines.append(f"_Generated: {now}_\n\n")

    if header_lines:
        for h in header_lines:
            lines.append(h + "\n")
        lines.append("\n")

    if script_path is not None:
        lines.append(f"Script: [{script_path.name}]({rel_link(summary_path, script_path)})\n\n")

    lines.append("## Contents\n")
    for title, _ in sections:
        lines.append(f"- [{title}](#{md_anchor(title)})\n")
    lines.append("\n")

    total = 0
    for title, count in sections:
        total += count
        lines.append(f"## {title}\n\n")
        if not count:
            lines.append("- No differences\n\n")
            continue
        lines.append(f"- {count} statement line(s)\n\n")

    lines.append(f"**Total:** {total} statement line(s)\n")

    write_text(summary_path, "".join(lines))
    return summary_path
