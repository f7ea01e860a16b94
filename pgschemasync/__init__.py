"""
pgschemasync
============

Internal modules for the PostgreSQL schema sync tool.

These modules are intended to be used together via the CLI entry point:

- :mod:`pgschemasync.cli`

The comparison core is :mod:`pgschemasync.orchestrator`, which runs one
comparator module per object kind (sequences, tables, columns, routines,
constraints, indexes, triggers) and assembles the review script.
"""

__version__ = "0.3.0"
