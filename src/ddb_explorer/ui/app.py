from __future__ import annotations

import logging
from collections.abc import Sequence

from ..backend.base import BackendInterface
from .dispatch import OperationRunner, edit_text
from .operations import AsyncMessage, BackendRequest, EditText, Quit, Request
from .render import render_body, render_footer, render_header
from .state import Explorer

logger = logging.getLogger(__name__)

# Keys Textual reports by name that the state machine handles as characters.
_NAMED_CHARACTERS = {"space": " ", "question_mark": "?", "colon": ":", "slash": "/"}


def translate_key(key: str, character: str | None) -> str:
    """Map a Textual key event to the key names the explorer understands."""

    if key.startswith("ctrl+"):
        return key
    if character is not None and len(character) == 1 and character.isprintable():
        return character
    return _NAMED_CHARACTERS.get(key, key)


def run_explorer(
    backend: BackendInterface,
    *,
    requested_table: str = "",
    editor: Sequence[str],
) -> None:
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.events import Key, Resize
    from textual.message import Message
    from textual.widgets import Static

    class OperationResult(Message):
        def __init__(self, result: AsyncMessage) -> None:
            super().__init__()
            self.result = result

    class _ExplorerApp(App[None]):
        BINDINGS = [
            Binding("ctrl+c", "quit_explorer", "Quit", priority=True),
        ]

        CSS = """
        Screen {
            background: #2e3436;
            color: #eeeeec;
        }
        #header {
            height: 1;
            padding: 0 1;
            background: #555753;
        }
        #body {
            height: 1fr;
            padding: 0 1;
        }
        #prompt {
            height: 1;
            padding: 0 1;
        }
        """

        def __init__(self) -> None:
            super().__init__()
            self._explorer = Explorer(requested_table)
            self._runner = OperationRunner(backend)

        def compose(self) -> ComposeResult:
            yield Static("", id="header")
            yield Static("", id="body")
            yield Static("", id="prompt")

        def on_mount(self) -> None:
            self._dispatch(self._explorer.start())
            self._refresh_view()

        def on_resize(self, event: Resize) -> None:
            self._refresh_view()

        def on_key(self, event: Key) -> None:
            event.stop()
            event.prevent_default()
            request = self._explorer.handle_key(translate_key(event.key, event.character))
            self._dispatch(request)
            self._refresh_view()

        def on_operation_result(self, message: OperationResult) -> None:
            self._dispatch(self._explorer.apply(message.result))
            self._refresh_view()

        def action_quit_explorer(self) -> None:
            self._dispatch(Quit())

        def _dispatch(self, request: Request | None) -> None:
            while request is not None:
                match request:
                    case Quit():
                        self.exit()
                        return
                    case EditText(content=content, original=original):
                        with self.suspend():
                            result = edit_text(content, original, command=editor)
                        request = self._explorer.apply(result)
                    case _:
                        self._start_operation(request)
                        return

        def _start_operation(self, request: BackendRequest) -> None:
            logger.debug("Dispatching %s", type(request).__name__)

            def work() -> None:
                self.post_message(OperationResult(self._runner.run(request)))

            self.run_worker(work, thread=True, exclusive=True, group="backend")

        def _refresh_view(self) -> None:
            session = self._explorer.session
            body_height = max(1, self.size.height - 2)
            self.query_one("#header", Static).update(render_header(session))
            self.query_one("#body", Static).update(
                render_body(session, height=body_height, width=self.size.width - 2)
            )
            self.query_one("#prompt", Static).update(render_footer(session))

    _ExplorerApp().run()
