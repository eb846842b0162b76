from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

TypeTag = Literal["S", "N", "BOOL", "NULL", "L", "M", "SS", "NS", "BS", "B"]
KeyType = Literal["S", "N", "B"]


@dataclass(frozen=True, slots=True)
class StringValue:
    value: str


@dataclass(frozen=True, slots=True)
class NumberValue:
    """Arbitrary-precision number kept as its decimal text."""

    text: str


@dataclass(frozen=True, slots=True)
class BoolValue:
    value: bool


@dataclass(frozen=True, slots=True)
class NullValue:
    pass


@dataclass(frozen=True, slots=True)
class ListValue:
    items: tuple[TypedValue, ...] = ()


@dataclass(frozen=True, slots=True)
class MapValue:
    attrs: dict[str, TypedValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StringSetValue:
    members: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class NumberSetValue:
    members: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BinarySetValue:
    members: tuple[bytes, ...] = ()


@dataclass(frozen=True, slots=True)
class BinaryValue:
    value: bytes


TypedValue: TypeAlias = (
    StringValue
    | NumberValue
    | BoolValue
    | NullValue
    | ListValue
    | MapValue
    | StringSetValue
    | NumberSetValue
    | BinarySetValue
    | BinaryValue
)
Record: TypeAlias = dict[str, TypedValue]


@dataclass(frozen=True, slots=True)
class IndexSchema:
    name: str
    partition_key: str
    sort_key: str = ""


@dataclass(frozen=True, slots=True)
class TableSchema:
    name: str
    partition_key: str
    sort_key: str = ""
    global_indexes: tuple[IndexSchema, ...] = ()
    local_indexes: tuple[IndexSchema, ...] = ()
    key_types: dict[str, KeyType] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.sort_key:
            return f"{self.name} (PK: {self.partition_key}, SK: {self.sort_key})"
        return f"{self.name} (PK: {self.partition_key})"

    @property
    def indexes(self) -> tuple[IndexSchema, ...]:
        return self.global_indexes + self.local_indexes


def type_tag(value: TypedValue) -> TypeTag:
    match value:
        case StringValue():
            return "S"
        case NumberValue():
            return "N"
        case BoolValue():
            return "BOOL"
        case NullValue():
            return "NULL"
        case ListValue():
            return "L"
        case MapValue():
            return "M"
        case StringSetValue():
            return "SS"
        case NumberSetValue():
            return "NS"
        case BinarySetValue():
            return "BS"
        case BinaryValue():
            return "B"
    raise TypeError(f"Not a typed value: {value!r}")


def key_value(schema: TableSchema, attr: str, raw: str) -> TypedValue:
    """Build a key attribute from command-line text using the declared key type."""

    match schema.key_types.get(attr, "S"):
        case "N":
            return NumberValue(raw)
        case "B":
            return BinaryValue(raw.encode("utf-8"))
        case _:
            return StringValue(raw)


def build_key(schema: TableSchema, pk: str, sk: str = "") -> Record:
    """Key for `pk [sk]`; the sort key is only used when the table defines one."""

    key: Record = {schema.partition_key: key_value(schema, schema.partition_key, pk)}
    if schema.sort_key and sk:
        key[schema.sort_key] = key_value(schema, schema.sort_key, sk)
    return key


def key_of(schema: TableSchema, record: Record) -> Record | None:
    """Primary key of a loaded record, or None when the partition key is missing."""

    pk = record.get(schema.partition_key)
    if pk is None:
        return None
    key: Record = {schema.partition_key: pk}
    if schema.sort_key:
        sk = record.get(schema.sort_key)
        if sk is not None:
            key[schema.sort_key] = sk
    return key


def to_wire(value: TypedValue) -> dict[str, Any]:
    """Convert to the low-level client's AttributeValue shape (`{"S": "x"}`)."""

    match value:
        case StringValue(value=text):
            return {"S": text}
        case NumberValue(text=text):
            return {"N": text}
        case BoolValue(value=flag):
            return {"BOOL": flag}
        case NullValue():
            return {"NULL": True}
        case ListValue(items=items):
            return {"L": [to_wire(item) for item in items]}
        case MapValue(attrs=attrs):
            return {"M": record_to_wire(attrs)}
        case StringSetValue(members=members):
            return {"SS": list(members)}
        case NumberSetValue(members=members):
            return {"NS": list(members)}
        case BinarySetValue(members=members):
            return {"BS": list(members)}
        case BinaryValue(value=blob):
            return {"B": blob}
    raise TypeError(f"Not a typed value: {value!r}")


def from_wire(raw: dict[str, Any]) -> TypedValue:
    if len(raw) != 1:
        raise ValueError(f"AttributeValue must have exactly one type key, got {sorted(raw)}")
    ((tag, payload),) = raw.items()
    match tag:
        case "S":
            return StringValue(str(payload))
        case "N":
            return NumberValue(str(payload))
        case "BOOL":
            return BoolValue(bool(payload))
        case "NULL":
            return NullValue()
        case "L":
            return ListValue(tuple(from_wire(item) for item in payload))
        case "M":
            return MapValue(record_from_wire(payload))
        case "SS":
            return StringSetValue(tuple(str(item) for item in payload))
        case "NS":
            return NumberSetValue(tuple(str(item) for item in payload))
        case "BS":
            return BinarySetValue(tuple(_as_bytes(item) for item in payload))
        case "B":
            return BinaryValue(_as_bytes(payload))
    raise ValueError(f"Unsupported AttributeValue type: {tag}")


def _as_bytes(payload: Any) -> bytes:
    if isinstance(payload, bytes | bytearray):
        return bytes(payload)
    return str(payload).encode("utf-8")


def record_to_wire(record: Record) -> dict[str, dict[str, Any]]:
    return {name: to_wire(value) for name, value in record.items()}


def record_from_wire(raw: dict[str, dict[str, Any]]) -> Record:
    return {name: from_wire(value) for name, value in raw.items()}
