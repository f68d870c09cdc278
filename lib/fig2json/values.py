import enum
import math
import base64


class ValueKind(enum.Enum):
    Null = 0
    Bool = 1
    Int = 2
    Float = 3
    String = 4
    Bytes = 5
    Array = 6
    Record = 7


class Record:
    """!
    Decoded struct or message instance.

    Holds the definition it was decoded against and its fields in wire
    order, keyed by field name.
    """
    __slots__ = ("definition", "fields")

    def __init__(self, definition, fields=None):
        self.definition = definition
        self.fields = fields if fields is not None else {}

    @property
    def type_id(self):
        return self.definition.index

    @property
    def type_name(self):
        return self.definition.name

    def __getitem__(self, name):
        return self.fields[name]

    def __setitem__(self, name, value):
        self.fields[name] = value

    def __contains__(self, name):
        return name in self.fields

    def __iter__(self):
        return iter(self.fields)

    def __len__(self):
        return len(self.fields)

    def get(self, name, default=None):
        return self.fields.get(name, default)

    def items(self):
        return self.fields.items()

    def __eq__(self, other):
        if not isinstance(other, Record):
            return NotImplemented
        return self.definition.name == other.definition.name and self.fields == other.fields

    def __repr__(self):
        return "<Record %s %s>" % (self.definition.name, self.fields)


_kinds = {
    type(None): ValueKind.Null,
    bool: ValueKind.Bool,
    int: ValueKind.Int,
    float: ValueKind.Float,
    str: ValueKind.String,
    bytes: ValueKind.Bytes,
    list: ValueKind.Array,
    Record: ValueKind.Record,
}


def value_kind(value):
    """!
    Discriminant of a generic tree value, None for anything outside the union
    """
    return _kinds.get(type(value))


def float_to_json(value):
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def to_json(value):
    """!
    Materializes a generic tree value into plain JSON-compatible data.

    Records become dicts, byte arrays become base64 strings and non-finite
    floats become None. Values outside the union are returned unchanged so
    already materialized data passes through.
    """
    kind = value_kind(value)

    if kind == ValueKind.Record:
        return {name: to_json(item) for name, item in value.items()}
    if kind == ValueKind.Array:
        return [to_json(item) for item in value]
    if kind == ValueKind.Bytes:
        return base64.b64encode(value).decode("ascii")
    if kind == ValueKind.Float:
        return float_to_json(value)
    if kind is None and isinstance(value, dict):
        return {name: to_json(item) for name, item in value.items()}
    return value
