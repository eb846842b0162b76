from __future__ import annotations

from rich.columns import Columns
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from ..model.codec import encode_record, encode_type_map, value_text
from .state import Mode, Session

_PRIMARY = "#729fcf"
_SECONDARY = "#babdb6"
_ERROR = "#ef2929"
_SUCCESS = "#8ae234"
_SELECTED = "#ad7fa8"

HELP_TEXT = """\
Keyboard Shortcuts:
  up/k, down/j  Move cursor up/down
  gg            Go to first item
  G             Go to last item
  Enter         View item details
  Space         Toggle multi-select
  e             Edit current item in $EDITOR
  dd            Delete selected/current item(s)
  i, a          Insert new item (PutItem)
  t             Select table
  x             (In item view) Toggle data type display
  ?             Show this help
  Esc           Cancel/close

Commands:
  /scan [index]              Scan table or index
  /query [index] pk=value    Query by partition key
  /get pk [sk]               Get single item by primary key
  /put                       Put new item (opens editor)
  /update pk [sk]            Update item (opens editor)
  /delete pk [sk]            Delete item
  /rm pk [sk]                Delete item (alias)
  /?                         Show this help
  /err                       Show last error
  /q, :q, :quit              Quit

Type Hints:
  When editing items, use a <TYPE> suffix on attribute names:
    "count<N>": "42"            Number
    "tags<SS>": ["a", "b"]      String Set
    "data<L>": [1, "two"]       List
    "config<M>": {...}          Map (hints inside are applied)
    "active<BOOL>": "true"      Boolean
    "empty<NULL>": null         Null
    "raw<B>": "base64:aGk="     Binary (text without base64: is stored as-is)
  Supported types: S, N, BOOL, NULL, L, M, SS, NS, B, BS
  Hints are removed from attribute names when the item is saved.
  If a save fails to parse, press e to reopen your edit."""


def _cut(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    if width <= 3:
        return text[:width]
    return text[: width - 3] + "..."


def render_header(session: Session) -> Text:
    table = session.table
    header = Text(table.label if table is not None else "No table", style=f"bold {_PRIMARY}")
    header.append("  ")
    header.append(session.status, style=_ERROR if session.error_active else _SECONDARY)
    return header


def render_records(session: Session, *, height: int, width: int) -> RenderableType:
    table_schema = session.table
    if table_schema is None:
        return Text("  No table selected", style=_SECONDARY)
    if not session.records:
        return Text("  No items", style=_SECONDARY)

    key_width = 20
    has_sort = bool(table_schema.sort_key)
    json_width = max(20, width - key_width * (2 if has_sort else 1) - 10)

    grid = Table.grid(padding=(0, 1))
    grid.add_column(width=2)
    grid.add_column(width=key_width, no_wrap=True)
    if has_sort:
        grid.add_column(width=key_width, no_wrap=True)
    grid.add_column(no_wrap=True)

    visible = max(1, height)
    start = max(0, session.cursor - visible + 1)
    for idx in range(start, min(len(session.records), start + visible)):
        record = session.records[idx]
        marker = " "
        if idx == session.cursor:
            marker = "▶"
        elif idx in session.selected:
            marker = "●"
        style = ""
        if idx == session.cursor:
            style = "on #3a3a3a"
        if idx in session.selected:
            style = f"{_SELECTED} {style}".strip()
        # Record text is data, never console markup.
        cells = [
            Text(marker),
            Text(_cut(value_text(record.get(table_schema.partition_key)), key_width)),
        ]
        if has_sort:
            cells.append(Text(_cut(value_text(record.get(table_schema.sort_key)), key_width)))
        cells.append(Text(_cut(encode_record(record, pretty=False), json_width)))
        grid.add_row(*cells, style=style)
    return grid


def render_table_select(session: Session) -> RenderableType:
    lines = [Text("Select Table:", style=f"bold {_PRIMARY}"), Text("")]
    for idx, table in enumerate(session.tables):
        line = Text("▶ " if idx == session.table_cursor else "  ", style=_PRIMARY)
        line.append(table.label)
        lines.append(line)
    return Group(*lines)


def render_item_view(session: Session) -> RenderableType:
    record = session.current_record
    if record is None:
        return Text("  No item", style=_SECONDARY)
    values = Syntax(encode_record(record), "json", theme="ansi_dark", word_wrap=True)
    if not session.show_types:
        return Panel(values, border_style=_PRIMARY)
    types = Syntax(encode_type_map(record), "json", theme="ansi_dark", word_wrap=True)
    return Columns(
        [
            Panel(values, title="Values", border_style=_PRIMARY),
            Panel(types, title="Types", border_style=_SUCCESS),
        ],
        equal=True,
        expand=True,
    )


def render_body(session: Session, *, height: int, width: int) -> RenderableType:
    match session.mode:
        case Mode.TABLE_SELECT:
            return render_table_select(session)
        case Mode.ITEM_VIEW:
            return render_item_view(session)
        case Mode.ERROR_VIEW:
            return Panel(Text(session.error_text, style=_ERROR), border_style=_ERROR)
        case Mode.HELP:
            return Text(HELP_TEXT, style=_SECONDARY)
    return render_records(session, height=height, width=width)


def render_footer(session: Session) -> Text:
    match session.mode:
        case Mode.CONFIRM_DELETE:
            return Text(f"Delete {session.delete_count} item(s)? (y/n) ", style=_ERROR)
        case Mode.TABLE_SELECT:
            return Text("Press Enter to select, Esc to cancel", style=_SECONDARY)
        case Mode.ITEM_VIEW:
            verb = "hide" if session.show_types else "show"
            return Text(f"Press x to {verb} types, e to edit, Enter/q/Esc to close", style=_SECONDARY)
        case Mode.ERROR_VIEW:
            return Text("Press Enter, q, or Esc to close", style=_ERROR)
        case Mode.HELP:
            return Text("Press ? or Esc to close", style=_SECONDARY)
        case Mode.COMMAND:
            return Text(session.input_buffer + "█", style=f"bold {_SUCCESS}")
    return Text("~~ ITEMS ~~", style=f"bold {_PRIMARY}")
