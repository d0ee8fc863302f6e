from __future__ import annotations

from typing import Any, BinaryIO, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

Row = Dict[str, Any]
Filters = Mapping[str, Any]


class TableStore(Protocol):
    """Protocol describing the table operations the services rely on.

    Tables are addressed by name (see :mod:`recipehub.models`). Every row is a
    plain dictionary that includes its primary key column. Filters are
    equality predicates combined with AND. ``order_by`` is only combined
    with filters on that same column; Firestore needs a composite index for
    anything else, so callers sort filtered results with :func:`sort_rows`.
    """

    def select(
        self,
        table: str,
        *,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Return the matching rows."""

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert a row, assigning its primary key and ``created_at``."""

    def upsert(self, table: str, values: Mapping[str, Any], *, on: Sequence[str]) -> Row:
        """Insert a row or update the row sharing the ``on`` column values."""

    def update(self, table: str, filters: Filters, values: Mapping[str, Any]) -> List[Row]:
        """Update every matching row and return the new representations."""

    def delete(self, table: str, filters: Filters) -> int:
        """Delete every matching row and return how many were removed."""

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        """Return the exact number of matching rows."""


class ObjectStore(Protocol):
    """Protocol describing blob storage addressed by path."""

    def upload(
        self,
        path: str,
        data: Union[bytes, BinaryIO],
        *,
        content_type: Optional[str] = None,
        cache_control: str = "max-age=3600",
        overwrite: bool = False,
    ) -> str:
        """Store ``data`` at ``path`` and return the object's public URL."""

    def delete(self, paths: Iterable[str]) -> None:
        """Remove the objects at ``paths``. Missing objects are ignored."""

    def public_url(self, path: str) -> str:
        """Return the public URL of the object stored at ``path``."""

    def path_from_url(self, url: str) -> Optional[str]:
        """Return the storage-relative path for ``url``.

        Relative paths are returned unchanged. URLs that point outside this
        store return ``None``.
        """


def sort_rows(rows: Iterable[Row], column: str, *, descending: bool = False) -> List[Row]:
    """Sort rows on ``column`` in memory; rows without a value come last."""

    rows = list(rows)
    present = [row for row in rows if row.get(column) is not None]
    missing = [row for row in rows if row.get(column) is None]
    present.sort(key=lambda row: row[column], reverse=descending)
    return present + missing


def conflict_key(values: Mapping[str, Any], on: Sequence[str]) -> str:
    """Deterministic primary key for a row identified by the ``on`` columns."""

    parts = []
    for column in on:
        value = values.get(column)
        if value in (None, ""):
            raise ValueError(f"Upsert requires a value for '{column}'.")
        parts.append(str(value))
    return "__".join(parts)


__all__ = ["Filters", "ObjectStore", "Row", "TableStore", "conflict_key", "sort_rows"]
