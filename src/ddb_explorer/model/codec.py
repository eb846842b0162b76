from __future__ import annotations

import base64
import binascii
import json
from decimal import Decimal, InvalidOperation
from typing import Any

from .values import (
    BinarySetValue,
    BinaryValue,
    BoolValue,
    ListValue,
    MapValue,
    NullValue,
    NumberSetValue,
    NumberValue,
    Record,
    StringSetValue,
    StringValue,
    TypedValue,
    type_tag,
)

_INDENT = "  "
# Binary text carrying this prefix is base64; any other text is the bytes themselves.
BASE64_PREFIX = "base64:"


class CodecError(ValueError):
    """Raised when editable JSON text cannot be converted into a record."""


class _JsonNumber(str):
    """Literal text of a JSON number, kept so decoding never loses precision."""


# ---------------------------------------------------------------------------
# Decoding (JSON text -> Record)
# ---------------------------------------------------------------------------


def _loads(text: str) -> Any:
    return json.loads(text, parse_int=_JsonNumber, parse_float=_JsonNumber)


def decode_record(text: str) -> Record:
    """Parse editable JSON text into a record, applying `<TYPE>` hints.

    Hints are processed on the top-level object and inside values carrying an
    explicit `M` hint. An unhinted nested object is inferred as a plain map and
    its keys are taken literally.
    """

    try:
        data = _loads(text)
    except json.JSONDecodeError as exc:
        raise CodecError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CodecError(f"invalid JSON: expected an object, got {_json_kind(data)}")
    return _process_type_hints(data)


def split_type_hint(name: str) -> tuple[str, str | None]:
    """Split `age<N>` into (`age`, `N`); names without a hint return (name, None)."""

    idx = name.rfind("<")
    if idx == -1 or not name.endswith(">"):
        return (name, None)
    return (name[:idx], name[idx + 1 : -1])


def _process_type_hints(data: dict[str, Any]) -> Record:
    result: Record = {}
    for raw_name, raw_value in data.items():
        name, hint = split_type_hint(raw_name)
        if not name:
            raise CodecError(f"empty attribute name in {raw_name!r}")
        if name in result:
            raise CodecError(f"duplicate attribute {name!r}")
        if hint is None:
            result[name] = _infer(raw_value)
            continue
        try:
            result[name] = _convert_with_hint(raw_value, hint)
        except CodecError as exc:
            raise CodecError(f"failed to convert {name} with type {hint}: {exc}") from exc
    return result


def _infer(raw: Any) -> TypedValue:
    if isinstance(raw, _JsonNumber):
        return NumberValue(str(raw))
    if isinstance(raw, str):
        return StringValue(raw)
    if isinstance(raw, bool):
        return BoolValue(raw)
    if raw is None:
        return NullValue()
    if isinstance(raw, list):
        return ListValue(tuple(_infer(item) for item in raw))
    if isinstance(raw, dict):
        return MapValue({str(name): _infer(value) for name, value in raw.items()})
    raise CodecError(f"unsupported JSON value: {raw!r}")


def _convert_with_hint(raw: Any, hint: str) -> TypedValue:
    match hint.strip().upper():
        case "S":
            return StringValue(_member_text(raw))
        case "N":
            return NumberValue(_number_text(raw))
        case "BOOL":
            return BoolValue(_bool_value(raw))
        case "NULL":
            return NullValue()
        case "L":
            return ListValue(tuple(_infer(item) for item in _list_source(raw)))
        case "M":
            return MapValue(_process_type_hints(_map_source(raw)))
        case "SS":
            return StringSetValue(_unique(_member_text(item) for item in _set_source(raw)))
        case "NS":
            return NumberSetValue(_unique(_number_text(item) for item in _set_source(raw)))
        case "BS":
            return BinarySetValue(_unique(_binary_value(item) for item in _set_source(raw)))
        case "B":
            return BinaryValue(_binary_value(raw))
    raise CodecError(f"unknown type hint: {hint}")


def _member_text(raw: Any) -> str:
    if isinstance(raw, str):
        return str(raw)
    return _dumps_native(raw)


def _number_text(raw: Any) -> str:
    if isinstance(raw, _JsonNumber):
        return str(raw)
    if isinstance(raw, str):
        text = raw.strip()
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            parsed = None
        if parsed is not None and parsed.is_finite():
            return text
    raise CodecError(f"cannot convert {_dumps_native(raw)} to number")


def _bool_value(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and not isinstance(raw, _JsonNumber):
        lowered = raw.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise CodecError(f"cannot convert {_dumps_native(raw)} to boolean")


def _list_source(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and not isinstance(raw, _JsonNumber):
        try:
            parsed = _loads(raw)
        except json.JSONDecodeError as exc:
            raise CodecError(f"cannot parse list: {exc}") from exc
        if not isinstance(parsed, list):
            raise CodecError(f"cannot parse list: got {_json_kind(parsed)}")
        return parsed
    return [raw]


def _map_source(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and not isinstance(raw, _JsonNumber):
        try:
            parsed = _loads(raw)
        except json.JSONDecodeError as exc:
            raise CodecError(f"cannot parse map: {exc}") from exc
        if not isinstance(parsed, dict):
            raise CodecError(f"cannot parse map: got {_json_kind(parsed)}")
        return parsed
    raise CodecError(f"cannot convert {_dumps_native(raw)} to map")


def _set_source(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and not isinstance(raw, _JsonNumber):
        try:
            parsed = _loads(raw)
        except json.JSONDecodeError:
            return [raw]
        return parsed if isinstance(parsed, list) else [raw]
    return [raw]


def _binary_value(raw: Any) -> bytes:
    text = _member_text(raw)
    if not text.startswith(BASE64_PREFIX):
        return text.encode("utf-8")
    try:
        return base64.b64decode(text[len(BASE64_PREFIX) :], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError(f"invalid base64 after {BASE64_PREFIX!r}: {exc}") from exc


def _unique(members: Any) -> tuple[Any, ...]:
    seen: dict[Any, None] = {}
    for member in members:
        seen.setdefault(member, None)
    return tuple(seen)


def _json_kind(raw: Any) -> str:
    if isinstance(raw, _JsonNumber):
        return "number"
    if isinstance(raw, str):
        return "string"
    if isinstance(raw, bool):
        return "boolean"
    if raw is None:
        return "null"
    if isinstance(raw, list):
        return "array"
    return "object"


def _dumps_native(raw: Any) -> str:
    """Compact JSON text of a value produced by `_loads`."""

    if isinstance(raw, _JsonNumber):
        return str(raw)
    if isinstance(raw, list):
        return "[" + ",".join(_dumps_native(item) for item in raw) + "]"
    if isinstance(raw, dict):
        parts = (f"{json.dumps(str(k))}:{_dumps_native(v)}" for k, v in raw.items())
        return "{" + ",".join(parts) + "}"
    return json.dumps(raw)


# ---------------------------------------------------------------------------
# Encoding (Record -> JSON text)
# ---------------------------------------------------------------------------


def encode_record(record: Record, *, pretty: bool = True, hints: bool = False) -> str:
    """Render a record as JSON text with sorted keys.

    With `hints=True` (the editor buffer) attributes JSON cannot express natively
    carry their `<TYPE>` suffix, and maps leading to them carry `<M>`, so that
    `decode_record(encode_record(r, hints=True)) == r`.
    """

    return _write_map(record, hints=hints, pretty=pretty, depth=0)


def encode_value(value: TypedValue, *, pretty: bool = False) -> str:
    return _write_value(value, hints=False, pretty=pretty, depth=0)


def _needs_hint(value: TypedValue) -> bool:
    match value:
        case StringSetValue() | NumberSetValue() | BinarySetValue() | BinaryValue():
            return True
        case MapValue(attrs=attrs):
            return any(_needs_hint(child) for child in attrs.values())
    return False


def _write_map(attrs: Record, *, hints: bool, pretty: bool, depth: int) -> str:
    if not attrs:
        return "{}"
    entries: list[str] = []
    for name in sorted(attrs):
        value = attrs[name]
        key = name
        child_hints = False
        # A name that already looks hinted needs an explicit hint to survive decoding.
        if hints and (_needs_hint(value) or split_type_hint(name)[1] is not None):
            key = f"{name}<{type_tag(value)}>"
            child_hints = isinstance(value, MapValue)
        rendered = _write_value(value, hints=child_hints, pretty=pretty, depth=depth + 1)
        sep = ": " if pretty else ":"
        entries.append(f"{json.dumps(key)}{sep}{rendered}")
    return _join("{", "}", entries, pretty=pretty, depth=depth)


def _write_value(value: TypedValue, *, hints: bool, pretty: bool, depth: int) -> str:
    match value:
        case StringValue(value=text):
            return json.dumps(text)
        case NumberValue(text=text):
            return text
        case BoolValue(value=flag):
            return "true" if flag else "false"
        case NullValue():
            return "null"
        case ListValue(items=items):
            rendered = [
                _write_value(item, hints=False, pretty=pretty, depth=depth + 1) for item in items
            ]
            return _join("[", "]", rendered, pretty=pretty, depth=depth)
        case MapValue(attrs=attrs):
            return _write_map(attrs, hints=hints, pretty=pretty, depth=depth)
        case StringSetValue(members=members):
            return _join("[", "]", [json.dumps(m) for m in members], pretty=pretty, depth=depth)
        case NumberSetValue(members=members):
            return _join("[", "]", list(members), pretty=pretty, depth=depth)
        case BinarySetValue(members=members):
            rendered = [json.dumps(_b64(m)) for m in members]
            return _join("[", "]", rendered, pretty=pretty, depth=depth)
        case BinaryValue(value=blob):
            return json.dumps(_b64(blob))
    raise TypeError(f"Not a typed value: {value!r}")


def _join(open_: str, close: str, parts: list[str], *, pretty: bool, depth: int) -> str:
    if not parts:
        return open_ + close
    if not pretty:
        return open_ + ",".join(parts) + close
    inner = _INDENT * (depth + 1)
    body = (",\n" + inner).join(parts)
    return f"{open_}\n{inner}{body}\n{_INDENT * depth}{close}"


def _b64(blob: bytes) -> str:
    return BASE64_PREFIX + base64.b64encode(blob).decode("ascii")


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def _type_tree(value: TypedValue) -> Any:
    match value:
        case ListValue(items=items):
            return {"type": "L", "elements": [_type_tree(item) for item in items]}
        case MapValue(attrs=attrs):
            return {"type": "M", "attributes": record_type_map(attrs)}
    return type_tag(value)


def record_type_map(record: Record) -> dict[str, Any]:
    return {name: _type_tree(value) for name, value in record.items()}


def encode_type_map(record: Record) -> str:
    """Pretty JSON showing the type tag of every attribute (split item view)."""

    return json.dumps(record_type_map(record), indent=2, sort_keys=True)


def value_text(value: TypedValue | None) -> str:
    """Short single-line text for list columns."""

    match value:
        case None | NullValue():
            return ""
        case StringValue(value=text):
            return text
        case NumberValue(text=text):
            return text
        case BoolValue(value=flag):
            return "true" if flag else "false"
    return encode_value(value)


def new_item_template(partition_key: str | None, sort_key: str = "") -> str:
    """Editor buffer for a new record holding only the key attributes."""

    if not partition_key:
        return "{}"
    keys = [partition_key] + ([sort_key] if sort_key else [])
    return _join("{", "}", [f'{json.dumps(k)}: ""' for k in keys], pretty=True, depth=0)
