from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .model.values import NumberValue, StringValue, TypedValue


class CommandError(ValueError):
    """Raised when a command line cannot be turned into a command."""


class UsageError(CommandError):
    """Raised when a known command is missing arguments."""


class UnknownCommandError(CommandError):
    def __init__(self, token: str) -> None:
        super().__init__(f"unknown command: {token}")
        self.token = token


class Verb(Enum):
    SCAN = "scan"
    QUERY = "query"
    GET = "get"
    PUT = "put"
    UPDATE = "update"
    DELETE = "delete"
    QUIT = "quit"
    HELP = "help"
    SHOW_ERROR = "err"


@dataclass(frozen=True, slots=True)
class Command:
    verb: Verb
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class QueryArgs:
    index: str | None
    key: str
    value: TypedValue


# Meta commands are matched on the whole line, never tokenized.
_META_COMMANDS: dict[str, Verb] = {
    ":q": Verb.QUIT,
    ":quit": Verb.QUIT,
    "/q": Verb.QUIT,
    "\\q": Verb.QUIT,
    ":?": Verb.HELP,
    ":help": Verb.HELP,
    "/?": Verb.HELP,
    "/help": Verb.HELP,
    "/err": Verb.SHOW_ERROR,
}

_DATA_VERBS: dict[str, Verb] = {
    "/scan": Verb.SCAN,
    "/query": Verb.QUERY,
    "/get": Verb.GET,
    "/put": Verb.PUT,
    "/update": Verb.UPDATE,
    "/delete": Verb.DELETE,
    "/rm": Verb.DELETE,
}

USAGE: dict[Verb, str] = {
    Verb.QUERY: "Usage: /query [indexName] pk=value",
    Verb.GET: "Usage: /get pk [sk]",
    Verb.UPDATE: "Usage: /update pk [sk]",
}

# Leading float literal, the way a `%f` scan accepts it; trailing text is ignored.
_FLOAT_PREFIX = re.compile(
    r"[+-]?(?:inf(?:inity)?|nan|(?:\d+(?:\.\d*)?|\.\d+)(?:e[+-]?\d+)?)",
    re.IGNORECASE,
)


def parse_command(line: str) -> Command | None:
    """Parse one line typed after `:` or `/`. Returns None for a blank line."""

    text = line.strip()
    if not text:
        return None
    meta = _META_COMMANDS.get(text)
    if meta is not None:
        return Command(meta)

    token, *args = text.split()
    verb = _DATA_VERBS.get(token.lower())
    if verb is None:
        raise UnknownCommandError(token.lower())
    if verb in USAGE and not args:
        raise UsageError(USAGE[verb])
    return Command(verb, tuple(args))


def looks_numeric(value: str) -> bool:
    return _FLOAT_PREFIX.match(value) is not None and '"' not in value


def parse_key_value(token: str) -> tuple[str, TypedValue]:
    """Split `name=value` on the first `=`; numeric-looking unquoted values are numbers."""

    if "=" not in token:
        raise CommandError(f"invalid key=value format: {token}")
    raw_key, raw_value = token.split("=", 1)
    key = raw_key.strip()
    value = raw_value.strip()
    if not key:
        raise CommandError(f"invalid key=value format: {token}")
    if looks_numeric(value):
        return (key, NumberValue(value))
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return (key, StringValue(value))


def parse_query_args(args: tuple[str, ...] | list[str]) -> QueryArgs:
    """Resolve `[index] key=value`; a leading token without `=` names the index."""

    index: str | None = None
    key_args = list(args)
    if len(key_args) > 1 and "=" not in key_args[0]:
        index = key_args.pop(0)
    if not key_args:
        raise UsageError(USAGE[Verb.QUERY])
    key, value = parse_key_value(key_args[0])
    return QueryArgs(index=index, key=key, value=value)
