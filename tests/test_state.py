from __future__ import annotations

from ddb_explorer.backend.base import KeyCondition
from ddb_explorer.model.codec import decode_record
from ddb_explorer.model.values import NumberValue, StringValue, TableSchema
from ddb_explorer.ui.operations import (
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
    SaveItem,
    TablesLoaded,
)
from ddb_explorer.ui.state import ERROR_DISPLAY_LIMIT, Explorer, Mode

USERS = TableSchema(name="users", partition_key="id")
EVENTS = TableSchema(name="events", partition_key="pk", sort_key="ts", key_types={"ts": "N"})


def _record(pk: str) -> dict:
    return {"id": StringValue(pk), "n": NumberValue("1")}


def _loaded(records: list[dict] | None = None) -> Explorer:
    explorer = Explorer()
    assert explorer.apply(TablesLoaded(tables=[USERS, EVENTS])) == LoadItems("users")
    explorer.apply(ItemsLoaded(items=records if records is not None else []))
    return explorer


def _type(explorer: Explorer, line: str) -> object:
    request = None
    for ch in line:
        request = explorer.handle_key(ch)
        assert request is None
    return explorer.handle_key("enter")


def test_start_loads_tables() -> None:
    assert Explorer().start() == LoadTables()


def test_tables_loaded_selects_requested_table() -> None:
    explorer = Explorer("events")
    assert explorer.apply(TablesLoaded(tables=[USERS, EVENTS])) == LoadItems("events")
    assert explorer.session.table == EVENTS


def test_missing_requested_table_falls_back_to_first() -> None:
    explorer = Explorer("nope")
    assert explorer.apply(TablesLoaded(tables=[USERS, EVENTS])) == LoadItems("users")
    assert explorer.session.status == "Table 'nope' not found, using users"
    explorer.apply(ItemsLoaded(items=[_record("a")]))
    assert explorer.session.status == "Table 'nope' not found, using users"


def test_no_tables() -> None:
    explorer = Explorer()
    assert explorer.apply(TablesLoaded(tables=[])) is None
    assert explorer.session.status == "No tables found"


def test_items_loaded_resets_cursor_and_selection() -> None:
    explorer = _loaded([_record("a"), _record("b")])
    session = explorer.session
    explorer.handle_key("j")
    explorer.handle_key(" ")
    assert session.cursor == 1
    assert session.selected == {1}
    explorer.apply(ItemsLoaded(items=[_record("c")]))
    assert session.cursor == 0
    assert session.selected == set()
    assert session.status == "Loaded 1 items"


def test_cursor_movement_is_clamped() -> None:
    explorer = _loaded([_record("a"), _record("b"), _record("c")])
    session = explorer.session
    explorer.handle_key("k")
    assert session.cursor == 0
    explorer.handle_key("G")
    assert session.cursor == 2
    explorer.handle_key("down")
    assert session.cursor == 2
    explorer.handle_key("g")
    explorer.handle_key("g")
    assert session.cursor == 0


def test_broken_chord_does_not_delete() -> None:
    explorer = _loaded([_record("a")])
    explorer.handle_key("d")
    explorer.handle_key("x")
    explorer.handle_key("d")
    assert explorer.session.mode is Mode.NORMAL
    explorer.handle_key("d")
    assert explorer.session.mode is Mode.CONFIRM_DELETE


def test_dd_without_records_does_nothing() -> None:
    explorer = _loaded([])
    explorer.handle_key("d")
    explorer.handle_key("d")
    assert explorer.session.mode is Mode.NORMAL


def test_delete_selected_records() -> None:
    explorer = _loaded([_record("A"), _record("B"), _record("C")])
    explorer.handle_key(" ")
    explorer.handle_key("j")
    explorer.handle_key("j")
    explorer.handle_key(" ")
    explorer.handle_key("d")
    explorer.handle_key("d")
    assert explorer.session.delete_count == 2
    request = explorer.handle_key("y")
    assert request == DeleteKeys(
        "users",
        ({"id": StringValue("A")}, {"id": StringValue("C")}),
    )
    assert explorer.apply(OperationDone(status="Deleted 2 item(s)")) == LoadItems("users")
    assert explorer.session.status == "Deleted 2 item(s)"


def test_delete_current_record_without_selection() -> None:
    explorer = _loaded([_record("A"), _record("B"), _record("C")])
    explorer.handle_key("j")
    explorer.handle_key("d")
    explorer.handle_key("d")
    assert explorer.handle_key("y") == DeleteKeys("users", ({"id": StringValue("B")},))


def test_confirm_delete_can_be_cancelled() -> None:
    explorer = _loaded([_record("A")])
    explorer.handle_key("d")
    explorer.handle_key("d")
    assert explorer.handle_key("n") is None
    assert explorer.session.mode is Mode.NORMAL


def test_table_select_cancel_keeps_active_table() -> None:
    explorer = _loaded([_record("A")])
    session = explorer.session
    explorer.handle_key("t")
    assert session.mode is Mode.TABLE_SELECT
    explorer.handle_key("j")
    assert session.table_cursor == 1
    explorer.handle_key("escape")
    assert session.mode is Mode.NORMAL
    assert session.table == USERS
    assert session.records == [_record("A")]


def test_table_select_enter_loads_table() -> None:
    explorer = _loaded([_record("A")])
    explorer.handle_key("t")
    explorer.handle_key("down")
    assert explorer.handle_key("enter") == LoadItems("events")
    assert explorer.session.table == EVENTS


def test_command_mode_editing() -> None:
    explorer = _loaded()
    session = explorer.session
    explorer.handle_key(":")
    assert session.mode is Mode.COMMAND
    assert session.input_buffer == ":"
    explorer.handle_key("x")
    explorer.handle_key("backspace")
    assert session.input_buffer == ":"
    explorer.handle_key("backspace")
    assert session.mode is Mode.NORMAL


def test_command_mode_escape_discards_input() -> None:
    explorer = _loaded()
    explorer.handle_key("/")
    explorer.handle_key("s")
    assert explorer.handle_key("escape") is None
    assert explorer.session.mode is Mode.NORMAL
    assert explorer.session.input_buffer == ""


def test_quit_commands_and_ctrl_c() -> None:
    explorer = _loaded()
    assert _type(explorer, ":q") == Quit()
    explorer.handle_key("t")
    assert explorer.handle_key("ctrl+c") == Quit()


def test_scan_and_query_commands() -> None:
    explorer = _loaded()
    assert _type(explorer, "/scan") == LoadItems("users")
    assert _type(explorer, "/scan by-email") == LoadItems("users", "by-email")
    assert _type(explorer, "/query by-age age=30") == QueryItems(
        "users", "by-age", KeyCondition("age", NumberValue("30"))
    )


def test_get_update_delete_use_declared_key_types() -> None:
    explorer = Explorer("events")
    explorer.apply(TablesLoaded(tables=[USERS, EVENTS]))
    explorer.apply(ItemsLoaded(items=[]))
    key = {"pk": StringValue("p1"), "ts": NumberValue("17")}
    assert _type(explorer, "/get p1 17") == GetItem("events", key)
    assert _type(explorer, "/update p1 17") == FetchForEdit("events", key)
    assert _type(explorer, "/rm p1 17") == DeleteItem("events", key)


def test_get_without_match_sets_status() -> None:
    explorer = _loaded([_record("A")])
    explorer.apply(ItemsLoaded(items=[], no_match=True))
    assert explorer.session.status == "No matching item"
    assert explorer.session.records == []


def test_unknown_command_reports_in_status() -> None:
    explorer = _loaded()
    assert _type(explorer, "/frob") is None
    assert explorer.session.status == "unknown command: /frob"
    assert explorer.session.error_active
    assert explorer.session.mode is Mode.NORMAL


def test_usage_error_reports_in_status() -> None:
    explorer = _loaded()
    _type(explorer, "/get")
    assert explorer.session.status == "Usage: /get pk [sk]"


def test_delete_without_args_and_without_records() -> None:
    explorer = _loaded()
    assert _type(explorer, "/delete") is None
    assert explorer.session.status == "No items to delete"


def test_delete_without_args_confirms() -> None:
    explorer = _loaded([_record("A")])
    _type(explorer, "/delete")
    assert explorer.session.mode is Mode.CONFIRM_DELETE


def test_commands_need_a_table() -> None:
    explorer = Explorer()
    explorer.apply(TablesLoaded(tables=[]))
    assert _type(explorer, "/scan") is None
    assert explorer.session.status == "No table selected"


def test_long_error_opens_error_view() -> None:
    explorer = _loaded()
    message = "x" * (ERROR_DISPLAY_LIMIT + 10)
    explorer.apply(ItemsLoaded(error=RuntimeError(message)))
    session = explorer.session
    assert session.mode is Mode.ERROR_VIEW
    assert session.error_text == message
    assert session.status == "x" * 47 + "... (/err)"
    explorer.handle_key("q")
    assert session.mode is Mode.NORMAL
    _type(explorer, "/err")
    assert session.mode is Mode.ERROR_VIEW
    assert session.error_text == message


def test_short_error_stays_in_status() -> None:
    explorer = _loaded()
    explorer.apply(OperationDone(error=RuntimeError("boom")))
    assert explorer.session.mode is Mode.NORMAL
    assert explorer.session.status == "boom"
    assert explorer.session.error_active


def test_show_error_without_errors() -> None:
    explorer = _loaded()
    _type(explorer, "/err")
    assert explorer.session.status == "No errors"


def test_help_mode() -> None:
    explorer = _loaded()
    explorer.handle_key("?")
    assert explorer.session.mode is Mode.HELP
    explorer.handle_key("escape")
    assert explorer.session.mode is Mode.NORMAL


def test_item_view_toggles_types() -> None:
    explorer = _loaded([_record("A")])
    explorer.handle_key("enter")
    assert explorer.session.mode is Mode.ITEM_VIEW
    explorer.handle_key("x")
    assert explorer.session.show_types
    explorer.handle_key("enter")
    assert explorer.session.mode is Mode.NORMAL


def test_edit_current_round_trip_saves_changes() -> None:
    explorer = _loaded([_record("A")])
    request = explorer.handle_key("e")
    assert isinstance(request, EditText)
    assert request.content == request.original

    edited = request.content.replace('"n": 1', '"n": 2')
    saved = explorer.apply(EditorFinished(content=edited, original=request.original))
    assert saved == SaveItem("users", {"id": StringValue("A"), "n": NumberValue("2")})
    assert explorer.apply(OperationDone(status="Item saved")) == LoadItems("users")
    assert explorer.session.status == "Item saved"


def test_unchanged_edit_is_not_saved() -> None:
    explorer = _loaded([_record("A")])
    request = explorer.handle_key("e")
    assert isinstance(request, EditText)
    result = explorer.apply(EditorFinished(content=request.content, original=request.original))
    assert result is None
    assert explorer.session.status == "No changes made"


def test_failed_parse_keeps_recovery_buffer() -> None:
    explorer = _loaded([_record("A")])
    request = explorer.handle_key("e")
    assert isinstance(request, EditText)
    broken = '{"id": "A", "n<N>": "abc"}'
    assert explorer.apply(EditorFinished(content=broken, original=request.original)) is None
    assert explorer.session.error_active
    assert explorer.session.edit_recovery == broken
    assert explorer.session.mode is Mode.ERROR_VIEW
    explorer.handle_key("escape")

    reopened = explorer.handle_key("e")
    assert reopened == EditText(broken, request.original)

    fixed = '{"id": "A", "n<N>": "5"}'
    assert explorer.apply(EditorFinished(content=fixed, original=request.original)) == SaveItem(
        "users", decode_record(fixed)
    )
    assert explorer.session.edit_recovery is None


def test_editor_failure_is_reported() -> None:
    explorer = _loaded([_record("A")])
    explorer.apply(EditorFinished(error=RuntimeError("editor exited with status 1")))
    assert explorer.session.status == "editor exited with status 1"


def test_new_item_uses_key_template() -> None:
    explorer = Explorer("events")
    explorer.apply(TablesLoaded(tables=[USERS, EVENTS]))
    request = explorer.handle_key("i")
    assert request == EditText('{\n  "pk": "",\n  "ts": ""\n}', '{\n  "pk": "",\n  "ts": ""\n}')
    assert _type(explorer, "/put") == request


def test_update_fetch_opens_editor() -> None:
    explorer = _loaded()
    request = explorer.apply(ItemFetchedForEdit(item=_record("Z")))
    assert isinstance(request, EditText)
    assert '"id": "Z"' in request.content
    assert explorer.session.records == [_record("Z")]


def test_update_fetch_missing_item() -> None:
    explorer = _loaded()
    assert explorer.apply(ItemFetchedForEdit(item=None)) is None
    assert explorer.session.status == "Item not found"


def test_edit_rejects_multi_selection() -> None:
    explorer = _loaded([_record("A"), _record("B")])
    explorer.handle_key(" ")
    explorer.handle_key("j")
    explorer.handle_key(" ")
    assert explorer.handle_key("e") is None
    assert explorer.session.status == "Select at most one item to edit"


def test_recovery_buffer_is_dropped_on_table_switch() -> None:
    explorer = _loaded([_record("u1")])
    request = explorer.handle_key("e")
    assert isinstance(request, EditText)
    broken = '{"id": "u1", broken'
    explorer.apply(EditorFinished(content=broken, original=request.original))
    explorer.handle_key("escape")
    assert explorer.session.edit_recovery == broken

    explorer.handle_key("t")
    explorer.handle_key("j")
    assert explorer.handle_key("enter") == LoadItems("events")
    assert explorer.session.edit_recovery is None
    explorer.apply(ItemsLoaded(items=[{"pk": StringValue("e1"), "ts": NumberValue("5")}]))

    reopened = explorer.handle_key("e")
    assert isinstance(reopened, EditText)
    assert '"pk": "e1"' in reopened.content
    assert "broken" not in reopened.content

    edited = reopened.content.replace('"ts": 5', '"ts": 6')
    assert explorer.apply(EditorFinished(content=edited, original=reopened.original)) == SaveItem(
        "events", {"pk": StringValue("e1"), "ts": NumberValue("6")}
    )


def test_recovery_buffer_belongs_to_its_record() -> None:
    explorer = _loaded([_record("A"), _record("B")])
    request = explorer.handle_key("e")
    assert isinstance(request, EditText)
    broken = '{"id": "A", broken'
    explorer.apply(EditorFinished(content=broken, original=request.original))
    explorer.handle_key("escape")

    explorer.handle_key("j")
    other = explorer.handle_key("e")
    assert isinstance(other, EditText)
    assert '"id": "B"' in other.content
    assert explorer.session.edit_recovery is None


def test_recovery_buffer_for_new_item() -> None:
    explorer = _loaded([_record("A")])
    request = explorer.handle_key("i")
    assert isinstance(request, EditText)
    broken = '{"id": "new", broken'
    explorer.apply(EditorFinished(content=broken, original=request.original))
    explorer.handle_key("escape")

    assert explorer.handle_key("i") == EditText(broken, request.original)
    edit = explorer.handle_key("e")
    assert isinstance(edit, EditText)
    assert '"id": "A"' in edit.content
