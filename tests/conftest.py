"""Shared fixtures: an in-memory query runner keyed by catalog query text."""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from pgschemasync.formatting import BackupNamer
from pgschemasync.models import SyncContext, SyncOptions, TableFilter

FIXED_MS = 1700000000000

Response = Union[List[Dict[str, Any]], Callable[[Tuple[Any, ...]], List[Dict[str, Any]]]]


class FakeRunner:
    """Stand-in for a database connection.

    ``responses`` maps the exact query text (the ``Q_*`` constants) to either a
    list of rows or a callable receiving the query parameters. Unknown queries
    return no rows. Every call is recorded in :attr:`calls`.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None, error: Optional[Exception] = None) -> None:
        self.responses: Dict[str, Response] = dict(responses or {})
        self.error = error
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.close_count = 0

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        params = tuple(params)
        self.calls.append((sql, params))
        if self.error is not None:
            raise self.error
        response = self.responses.get(sql, [])
        rows = response(params) if callable(response) else response
        return [dict(r) for r in rows]

    def close(self) -> None:
        self.close_count += 1


@pytest.fixture
def namer() -> BackupNamer:
    """Backup namer with a frozen clock."""
    return BackupNamer(clock=lambda: FIXED_MS)


@pytest.fixture
def make_ctx(namer: BackupNamer) -> Callable[..., SyncContext]:
    """Factory building a ``dev`` -> ``prod`` context over two fake runners."""

    def _make(
        source: Optional[Dict[str, Response]] = None,
        target: Optional[Dict[str, Response]] = None,
        table_filter: Optional[TableFilter] = None,
    ) -> SyncContext:
        return SyncContext(
            source=FakeRunner(source),
            target=FakeRunner(target),
            options=SyncOptions(
                source_schema="dev",
                target_schema="prod",
                table_filter=table_filter or TableFilter(),
            ),
            namer=namer,
        )

    return _make
