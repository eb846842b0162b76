from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeAlias

from ..backend.base import KeyCondition
from ..model.values import Record, TableSchema

# Requests: emitted by the state machine, executed once by the dispatch bridge.


@dataclass(frozen=True, slots=True)
class LoadTables:
    pass


@dataclass(frozen=True, slots=True)
class LoadItems:
    table: str
    index: str | None = None


@dataclass(frozen=True, slots=True)
class QueryItems:
    table: str
    index: str | None
    condition: KeyCondition


@dataclass(frozen=True, slots=True)
class GetItem:
    table: str
    key: Record


@dataclass(frozen=True, slots=True)
class FetchForEdit:
    table: str
    key: Record


@dataclass(frozen=True, slots=True)
class SaveItem:
    table: str
    record: Record


@dataclass(frozen=True, slots=True)
class DeleteItem:
    table: str
    key: Record


@dataclass(frozen=True, slots=True)
class DeleteKeys:
    table: str
    keys: tuple[Record, ...]


@dataclass(frozen=True, slots=True)
class EditText:
    """Open the external editor on `content`; `original` is the text edits are diffed against."""

    content: str
    original: str


@dataclass(frozen=True, slots=True)
class Quit:
    pass


BackendRequest: TypeAlias = (
    LoadTables
    | LoadItems
    | QueryItems
    | GetItem
    | FetchForEdit
    | SaveItem
    | DeleteItem
    | DeleteKeys
)
Request: TypeAlias = BackendRequest | EditText | Quit

# Async messages: the single result of one request.


@dataclass(frozen=True, slots=True)
class TablesLoaded:
    tables: list[TableSchema] = field(default_factory=list)
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class ItemsLoaded:
    items: list[Record] = field(default_factory=list)
    error: Exception | None = None
    no_match: bool = False


@dataclass(frozen=True, slots=True)
class OperationDone:
    status: str = ""
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class EditorFinished:
    content: str = ""
    original: str = ""
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class ItemFetchedForEdit:
    item: Record | None = None
    error: Exception | None = None


AsyncMessage: TypeAlias = (
    TablesLoaded | ItemsLoaded | OperationDone | EditorFinished | ItemFetchedForEdit
)
