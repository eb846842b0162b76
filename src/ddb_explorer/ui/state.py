from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..backend.base import KeyCondition
from ..commands import CommandError, Verb, parse_command, parse_query_args
from ..model.codec import CodecError, decode_record, encode_record, new_item_template
from ..model.values import Record, TableSchema, build_key, key_of
from .operations import (
    AsyncMessage,
    DeleteItem,
    DeleteKeys,
    EditorFinished,
    EditText,
    FetchForEdit,
    GetItem,
    ItemFetchedForEdit,
    ItemsLoaded,
    LoadItems,
    LoadTables,
    OperationDone,
    QueryItems,
    Quit,
    Request,
    SaveItem,
    TablesLoaded,
)

# Errors longer than this open the error view; the status line keeps a prefix.
ERROR_DISPLAY_LIMIT = 50
_ERROR_PREFIX_LEN = 47


class Mode(Enum):
    NORMAL = "normal"
    COMMAND = "command"
    TABLE_SELECT = "table_select"
    ITEM_VIEW = "item_view"
    CONFIRM_DELETE = "confirm_delete"
    HELP = "help"
    ERROR_VIEW = "error_view"


@dataclass(slots=True)
class Session:
    requested_table: str = ""
    mode: Mode = Mode.NORMAL
    tables: list[TableSchema] = field(default_factory=list)
    active_table: int = 0
    table_cursor: int = 0
    records: list[Record] = field(default_factory=list)
    cursor: int = 0
    selected: set[int] = field(default_factory=set)
    status: str = "Loading tables..."
    error_active: bool = False
    last_error: str = ""
    error_text: str = ""
    show_types: bool = False
    key_buffer: str = ""
    input_buffer: str = ""
    preserve_status: bool = False
    edit_original: str = ""
    edit_table: str = ""
    edit_key: Record | None = None
    edit_recovery: str | None = None

    @property
    def table(self) -> TableSchema | None:
        if 0 <= self.active_table < len(self.tables):
            return self.tables[self.active_table]
        return None

    @property
    def current_record(self) -> Record | None:
        if 0 <= self.cursor < len(self.records):
            return self.records[self.cursor]
        return None

    @property
    def delete_count(self) -> int:
        return len(self.selected) or 1

    def replace_records(self, records: list[Record]) -> None:
        self.records = records
        self.cursor = 0
        self.selected = set()


def truncate_error(text: str) -> str:
    if len(text) > ERROR_DISPLAY_LIMIT:
        return text[:_ERROR_PREFIX_LEN] + "... (/err)"
    return text


class Explorer:
    """Interaction state machine.

    All session mutation happens here, on the UI thread. Key handlers and
    message handlers return at most one request for the dispatch bridge.
    """

    def __init__(self, requested_table: str = "") -> None:
        self.session = Session(requested_table=requested_table)

    def start(self) -> Request:
        return LoadTables()

    # ------------------------------------------------------------------
    # Errors and status
    # ------------------------------------------------------------------

    def set_error(self, error: Exception | str) -> None:
        """Operation failure: long messages open the error view."""

        s = self.session
        text = str(error)
        s.last_error = text
        s.error_active = True
        s.status = truncate_error(text)
        if len(text) > ERROR_DISPLAY_LIMIT:
            s.error_text = text
            s.mode = Mode.ERROR_VIEW

    def _report(self, error: Exception | str) -> None:
        """Command failure: status line only, the mode is left alone."""

        s = self.session
        text = str(error)
        s.last_error = text
        s.error_active = True
        s.status = truncate_error(text)

    # ------------------------------------------------------------------
    # Async messages
    # ------------------------------------------------------------------

    def apply(self, message: AsyncMessage) -> Request | None:
        """Apply a background result regardless of the current mode."""

        match message:
            case TablesLoaded():
                return self._on_tables_loaded(message)
            case ItemsLoaded():
                return self._on_items_loaded(message)
            case OperationDone():
                return self._on_operation_done(message)
            case EditorFinished():
                return self._on_editor_finished(message)
            case ItemFetchedForEdit():
                return self._on_item_fetched_for_edit(message)
        raise TypeError(f"Unsupported message: {message!r}")

    def _on_tables_loaded(self, message: TablesLoaded) -> Request | None:
        s = self.session
        if message.error is not None:
            self.set_error(message.error)
            return None
        s.tables = list(message.tables)
        s.edit_recovery = None
        if not s.tables:
            s.status = "No tables found"
            return None
        s.active_table = 0
        s.status = f"Loaded {len(s.tables)} tables"
        if s.requested_table:
            names = [table.name for table in s.tables]
            if s.requested_table in names:
                s.active_table = names.index(s.requested_table)
            else:
                s.status = f"Table '{s.requested_table}' not found, using {names[0]}"
                s.preserve_status = True
        s.table_cursor = s.active_table
        return LoadItems(s.tables[s.active_table].name)

    def _on_items_loaded(self, message: ItemsLoaded) -> Request | None:
        s = self.session
        if message.error is not None:
            self.set_error(message.error)
            return None
        s.replace_records(list(message.items))
        s.error_active = False
        if message.no_match:
            s.status = "No matching item"
        elif s.preserve_status:
            s.preserve_status = False
        else:
            s.status = f"Loaded {len(s.records)} items"
        return None

    def _on_operation_done(self, message: OperationDone) -> Request | None:
        s = self.session
        if message.error is not None:
            self.set_error(message.error)
            return None
        s.status = message.status
        s.error_active = False
        table = s.table
        if table is None:
            return None
        return LoadItems(table.name)

    def _on_editor_finished(self, message: EditorFinished) -> Request | None:
        s = self.session
        if message.error is not None:
            self.set_error(message.error)
            return None
        if message.content == message.original:
            s.status = "No changes made"
            return None
        if not s.edit_table:
            self.set_error("no table selected")
            return None
        try:
            record = decode_record(message.content)
        except CodecError as exc:
            s.edit_recovery = message.content
            self.set_error(exc)
            return None
        s.edit_recovery = None
        # Saved into the table the edit started from, whatever is active now.
        return SaveItem(s.edit_table, record)

    def _on_item_fetched_for_edit(self, message: ItemFetchedForEdit) -> Request | None:
        s = self.session
        if message.error is not None:
            self._report(f"Error: {message.error}")
            return None
        if message.item is None:
            s.status = "Item not found"
            return None
        s.replace_records([message.item])
        s.edit_recovery = None
        return self._edit_current()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def handle_key(self, key: str) -> Request | None:
        if key == "ctrl+c":
            return Quit()
        match self.session.mode:
            case Mode.COMMAND:
                return self._command_key(key)
            case Mode.TABLE_SELECT:
                return self._table_select_key(key)
            case Mode.ITEM_VIEW:
                return self._item_view_key(key)
            case Mode.CONFIRM_DELETE:
                return self._confirm_delete_key(key)
            case Mode.ERROR_VIEW:
                if key in {"escape", "enter", "q"}:
                    self.session.mode = Mode.NORMAL
                    self.session.error_text = ""
                return None
            case Mode.HELP:
                if key in {"escape", "q", "?"}:
                    self.session.mode = Mode.NORMAL
                return None
        return self._normal_key(key)

    def _normal_key(self, key: str) -> Request | None:
        s = self.session
        chord, s.key_buffer = s.key_buffer, ""
        match key:
            case ":" | "/":
                s.mode = Mode.COMMAND
                s.input_buffer = key
                if s.error_active:
                    s.error_active = False
                    s.status = f"{len(s.records)} items"
            case "up" | "k":
                if s.cursor > 0:
                    s.cursor -= 1
            case "down" | "j":
                if s.cursor < len(s.records) - 1:
                    s.cursor += 1
            case "g":
                if chord == "g":
                    s.cursor = 0
                else:
                    s.key_buffer = "g"
            case "G":
                s.cursor = max(len(s.records) - 1, 0)
            case "d":
                if chord == "d":
                    if s.records:
                        s.mode = Mode.CONFIRM_DELETE
                else:
                    s.key_buffer = "d"
            case "enter":
                if s.current_record is not None:
                    s.mode = Mode.ITEM_VIEW
            case " ":
                if s.records:
                    s.selected ^= {s.cursor}
            case "e":
                if len(s.selected) > 1:
                    s.status = "Select at most one item to edit"
                    return None
                return self._edit_current()
            case "t":
                s.mode = Mode.TABLE_SELECT
                s.table_cursor = s.active_table
            case "i" | "a":
                return self._new_item()
            case "?":
                s.mode = Mode.HELP
            case "escape":
                s.input_buffer = ""
        return None

    def _command_key(self, key: str) -> Request | None:
        s = self.session
        match key:
            case "escape":
                s.mode = Mode.NORMAL
                s.input_buffer = ""
            case "enter":
                line, s.input_buffer = s.input_buffer, ""
                s.mode = Mode.NORMAL
                return self.execute(line)
            case "backspace":
                s.input_buffer = s.input_buffer[:-1]
                if not s.input_buffer:
                    s.mode = Mode.NORMAL
            case _ if len(key) == 1:
                s.input_buffer += key
        return None

    def _table_select_key(self, key: str) -> Request | None:
        s = self.session
        match key:
            case "escape":
                s.mode = Mode.NORMAL
                s.table_cursor = s.active_table
            case "up" | "k":
                if s.table_cursor > 0:
                    s.table_cursor -= 1
            case "down" | "j":
                if s.table_cursor < len(s.tables) - 1:
                    s.table_cursor += 1
            case "enter":
                s.mode = Mode.NORMAL
                if s.tables:
                    if s.table_cursor != s.active_table:
                        s.edit_recovery = None
                    s.active_table = s.table_cursor
                    return LoadItems(s.tables[s.active_table].name)
        return None

    def _item_view_key(self, key: str) -> Request | None:
        s = self.session
        match key:
            case "escape" | "q" | "enter":
                s.mode = Mode.NORMAL
            case "x":
                s.show_types = not s.show_types
            case "e":
                s.mode = Mode.NORMAL
                return self._edit_current()
        return None

    def _confirm_delete_key(self, key: str) -> Request | None:
        s = self.session
        match key:
            case "y" | "Y":
                s.mode = Mode.NORMAL
                return self._delete_selected()
            case "n" | "N" | "escape":
                s.mode = Mode.NORMAL
        return None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def execute(self, line: str) -> Request | None:
        """Run one command line typed in command mode."""

        s = self.session
        try:
            command = parse_command(line)
        except CommandError as exc:
            self._report(exc)
            return None
        if command is None:
            return None

        match command.verb:
            case Verb.QUIT:
                return Quit()
            case Verb.HELP:
                s.mode = Mode.HELP
                return None
            case Verb.SHOW_ERROR:
                if s.last_error:
                    s.error_text = s.last_error
                    s.mode = Mode.ERROR_VIEW
                else:
                    s.status = "No errors"
                return None
            case Verb.PUT:
                return self._new_item()
            case Verb.DELETE if not command.args:
                if s.records:
                    s.mode = Mode.CONFIRM_DELETE
                else:
                    s.status = "No items to delete"
                return None

        table = s.table
        if table is None:
            s.status = "No table selected"
            return None
        args = command.args
        match command.verb:
            case Verb.SCAN:
                return LoadItems(table.name, args[0] if args else None)
            case Verb.QUERY:
                try:
                    query = parse_query_args(args)
                except CommandError as exc:
                    self._report(f"Error: {exc}")
                    return None
                return QueryItems(table.name, query.index, KeyCondition(query.key, query.value))
            case Verb.GET:
                return GetItem(table.name, self._key_from_args(table, args))
            case Verb.UPDATE:
                return FetchForEdit(table.name, self._key_from_args(table, args))
            case Verb.DELETE:
                return DeleteItem(table.name, self._key_from_args(table, args))
        return None

    @staticmethod
    def _key_from_args(table: TableSchema, args: tuple[str, ...]) -> Record:
        return build_key(table, args[0], args[1] if len(args) > 1 else "")

    # ------------------------------------------------------------------
    # Edit and delete workflows
    # ------------------------------------------------------------------

    def _open_editor(self, content: str, key: Record | None = None) -> Request:
        s = self.session
        table = s.table
        s.edit_original = content
        s.edit_table = table.name if table is not None else ""
        s.edit_key = key
        s.edit_recovery = None
        return EditText(content, content)

    def _recovered_edit(self, key: Record | None) -> Request | None:
        """Reopen the text of a failed save, only for the same table and record."""

        s = self.session
        table = s.table
        if s.edit_recovery is None or table is None:
            return None
        if s.edit_table != table.name or s.edit_key != key:
            return None
        return EditText(s.edit_recovery, s.edit_original)

    def _new_item(self) -> Request:
        table = self.session.table
        if table is None:
            return self._open_editor(new_item_template(None))
        recovered = self._recovered_edit(None)
        if recovered is not None:
            return recovered
        return self._open_editor(new_item_template(table.partition_key, table.sort_key))

    def _edit_current(self) -> Request | None:
        s = self.session
        record = s.current_record
        if record is None:
            s.status = "No item selected"
            return None
        table = s.table
        key = key_of(table, record) if table is not None else None
        recovered = self._recovered_edit(key)
        if recovered is not None:
            return recovered
        return self._open_editor(encode_record(record, hints=True), key)

    def _delete_selected(self) -> Request | None:
        s = self.session
        table = s.table
        if table is None or not s.records:
            return None
        indices = sorted(s.selected) if s.selected else [s.cursor]
        keys: list[Record] = []
        for idx in indices:
            if idx >= len(s.records):
                continue
            key = key_of(table, s.records[idx])
            if key is not None:
                keys.append(key)
        if not keys:
            s.status = "Nothing to delete"
            return None
        return DeleteKeys(table.name, tuple(keys))
