"""
utils
=====

Small, shared utilities used across the codebase.

This module intentionally contains only low-level helpers that are safe to
import from anywhere (no database calls, no heavy imports).

Functions
---------
- :func:`safe_name`:
  Convert an arbitrary identifier (schema name, etc.) into a filesystem-safe
  filename component.
- :func:`write_text`:
  Write normalized UTF-8 text, creating parent directories.
"""

from __future__ import annotations

import re
from pathlib import Path


def safe_name(value: str) -> str:
    """Return a filesystem-safe version of *value*.

    Parameters
    ----------
    value:
        The input string to sanitize (e.g., a schema name).

    Returns
    -------
    str
        A sanitized string containing only ``[A-Za-z0-9._-]`` plus underscores,
        with surrounding underscores removed. Returns ``"unnamed"`` if the
        result would otherwise be empty.

    Examples
    --------
    >>> safe_name("sales reporting$2025")
    'sales_reporting_2025'
    >>> safe_name("")
    'unnamed'
    """
    out = re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("_")
    return out or "unnamed"


def write_text(path: Path, content: str) -> None:
    """Write UTF-8 text to *path* with normalized newlines.

    Parameters
    ----------
    path:
        File path to write.
    content:
        Text content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    path.write_text(content, encoding="utf-8")
