import pytest


@pytest.fixture(autouse=True)
def _wide_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    # Rich wraps CLI error panels at the detected width (80 by default),
    # which can split messages that tests match on.
    monkeypatch.setenv("COLUMNS", "200")
