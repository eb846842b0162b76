from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path

from ..backend.base import BackendError, BackendInterface
from .operations import (
    AsyncMessage,
    BackendRequest,
    DeleteItem,
    DeleteKeys,
    EditorFinished,
    FetchForEdit,
    GetItem,
    ItemFetchedForEdit,
    ItemsLoaded,
    LoadItems,
    LoadTables,
    OperationDone,
    QueryItems,
    SaveItem,
    TablesLoaded,
)

logger = logging.getLogger(__name__)

DEFAULT_EDITOR = "vim"
TEMP_PREFIX = "dui-"


class EditorError(Exception):
    """Raised when the external editor cannot be run or its result read back."""


def _failure(request: BackendRequest, exc: Exception) -> AsyncMessage:
    match request:
        case LoadTables():
            return TablesLoaded(error=exc)
        case LoadItems() | QueryItems() | GetItem():
            return ItemsLoaded(error=exc)
        case FetchForEdit():
            return ItemFetchedForEdit(error=exc)
    return OperationDone(error=exc)


class OperationRunner:
    """Executes one request against the backend and returns its single message.

    Runs off the UI thread; it never touches the session.
    """

    def __init__(self, backend: BackendInterface) -> None:
        self._backend = backend

    def run(self, request: BackendRequest) -> AsyncMessage:
        try:
            return self._run(request)
        except BackendError as exc:
            return _failure(request, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure running %s", type(request).__name__)
            return _failure(request, exc)

    def _run(self, request: BackendRequest) -> AsyncMessage:
        backend = self._backend
        match request:
            case LoadTables():
                names = backend.list_tables()
                return TablesLoaded(tables=[backend.describe_table(name) for name in names])
            case LoadItems(table=table, index=index):
                return ItemsLoaded(items=backend.scan(table, index))
            case QueryItems(table=table, index=index, condition=condition):
                return ItemsLoaded(items=backend.query(table, index, condition))
            case GetItem(table=table, key=key):
                item = backend.get_item(table, key)
                if item is None:
                    return ItemsLoaded(items=[], no_match=True)
                return ItemsLoaded(items=[item])
            case FetchForEdit(table=table, key=key):
                return ItemFetchedForEdit(item=backend.get_item(table, key))
            case SaveItem(table=table, record=record):
                backend.put_item(table, record)
                return OperationDone(status="Item saved")
            case DeleteItem(table=table, key=key):
                backend.delete_item(table, key)
                return OperationDone(status="Item deleted")
            case DeleteKeys(table=table, keys=keys):
                for key in keys:
                    backend.delete_item(table, key)
                return OperationDone(status=f"Deleted {len(keys)} item(s)")
        raise TypeError(f"Unsupported request: {request!r}")


def editor_command(environ: dict[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    return shlex.split(env.get("EDITOR") or "") or [DEFAULT_EDITOR]


def edit_text(content: str, original: str, *, command: Sequence[str]) -> EditorFinished:
    """Run the editor on a temp copy of `content` and return what the user saved.

    Blocks until the editor exits. The temp file is removed on every path.
    """

    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=".json")
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        try:
            result = subprocess.run([*command, str(path)], check=False)
        except OSError as exc:
            raise EditorError(f"failed to start editor {command[0]!r}: {exc}") from exc
        if result.returncode != 0:
            raise EditorError(f"editor exited with status {result.returncode}")
        try:
            edited = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise EditorError(f"failed to read edited file: {exc}") from exc
    except EditorError as exc:
        logger.warning("%s", exc)
        return EditorFinished(error=exc)
    except OSError as exc:
        return EditorFinished(error=EditorError(f"failed to write temp file: {exc}"))
    finally:
        path.unlink(missing_ok=True)
    return EditorFinished(content=edited, original=original)
