from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..model.values import Record, TableSchema, TypedValue

logger = logging.getLogger(__name__)

LISTING_TIMEOUT_S = 2.0

T = TypeVar("T")


class BackendError(Exception):
    """Base class for table store errors."""


class BackendTimeout(BackendError):
    """Raised when a listing does not complete within its deadline."""


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of a listing; `cursor` is None on the final page."""

    items: list[T] = field(default_factory=list)
    cursor: Any | None = None


@dataclass(frozen=True, slots=True)
class KeyCondition:
    """Equality condition on one key attribute (`#pk = :pk`)."""

    attribute: str
    value: TypedValue

    @property
    def expression(self) -> str:
        return "#pk = :pk"


class BackendInterface(ABC):
    """Table store client.

    Implementations provide single-page primitives; the listing methods here
    follow continuation cursors until the store reports no more pages.
    """

    listing_timeout_s: float = LISTING_TIMEOUT_S

    @abstractmethod
    def list_tables_page(self, cursor: Any | None) -> Page[str]:
        """Return one page of table names."""

    @abstractmethod
    def describe_table(self, name: str) -> TableSchema:
        """Return the key schema and secondary indexes of a table."""

    @abstractmethod
    def scan_page(
        self,
        table: str,
        index: str | None,
        cursor: Any | None,
    ) -> Page[Record]:
        """Return one page of a table (or index) scan."""

    @abstractmethod
    def query_page(
        self,
        table: str,
        index: str | None,
        condition: KeyCondition,
        cursor: Any | None,
    ) -> Page[Record]:
        """Return one page of a key-condition query."""

    @abstractmethod
    def get_item(self, table: str, key: Record) -> Record | None:
        """Return the record stored under `key`, or None when absent."""

    @abstractmethod
    def put_item(self, table: str, record: Record) -> None:
        """Create or replace a record."""

    @abstractmethod
    def delete_item(self, table: str, key: Record) -> None:
        """Delete the record stored under `key`."""

    def list_tables(self) -> list[str]:
        return _collect(self.list_tables_page, label="list tables")

    def scan(self, table: str, index: str | None = None) -> list[Record]:
        deadline = time.monotonic() + self.listing_timeout_s
        return _collect(
            lambda cursor: self.scan_page(table, index, cursor),
            label=f"scan {table}",
            deadline=deadline,
        )

    def query(
        self,
        table: str,
        index: str | None,
        condition: KeyCondition,
    ) -> list[Record]:
        deadline = time.monotonic() + self.listing_timeout_s
        return _collect(
            lambda cursor: self.query_page(table, index, condition, cursor),
            label=f"query {table}",
            deadline=deadline,
        )


def _collect(
    fetch: Callable[[Any | None], Page[T]],
    *,
    label: str,
    deadline: float | None = None,
) -> list[T]:
    items: list[T] = []
    cursor: Any | None = None
    pages = 0
    while True:
        page = fetch(cursor)
        pages += 1
        if deadline is not None and time.monotonic() >= deadline:
            raise BackendTimeout(f"{label} timed out after {pages} pages")
        items.extend(page.items)
        if page.cursor is None:
            break
        cursor = page.cursor
    logger.debug("%s: %d items in %d pages", label, len(items), pages)
    return items
