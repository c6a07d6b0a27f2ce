"""Storage protocol - the contract the engine needs from a datastore."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from schemacrud.query.spec import QuerySpec


@runtime_checkable
class Storage(Protocol):
    """Executes engine-neutral queries and single-table writes.

    Implementations select the physical datastore from the ``connection``
    qualifier (``None`` meaning the default connection) and raise
    :class:`~schemacrud.errors.StorageError` for datastore failures.
    """

    def fetch(self, spec: QuerySpec) -> list[dict[str, Any]]:
        """Rows matching the query, as dicts keyed by column name."""
        ...

    def count(self, spec: QuerySpec) -> int:
        """Number of rows the query would return without LIMIT/OFFSET."""
        ...

    def update(
        self,
        table: str,
        primary_key: str,
        record_id: Any,
        values: dict[str, Any],
        connection: str | None = None,
    ) -> int:
        """Update one row by primary key. Returns the number of rows changed."""
        ...

    def attach(
        self,
        pivot_table: str,
        foreign_key: str,
        parent_id: Any,
        related_key: str,
        related_ids: Iterable[Any],
        connection: str | None = None,
    ) -> int:
        """Insert pivot rows, skipping ones that already exist. Returns rows inserted."""
        ...

    def detach(
        self,
        pivot_table: str,
        foreign_key: str,
        parent_id: Any,
        related_key: str,
        related_ids: Iterable[Any],
        connection: str | None = None,
    ) -> int:
        """Delete pivot rows. Returns rows deleted."""
        ...
