"""Shared fixtures and schema/data builders for tests."""

import io
import struct

import pytest

from fig2json.kiwi import Schema, Definition, DefinitionType, Field, FieldType


def build_schema(*definitions):
    """Builds a Schema from (kind, name, fields) tuples.

    Fields are (name, type, value) or (name, type, value, is_array) where
    type is a FieldType, a definition name or None for enum values.
    """
    schema = Schema()
    pending = []
    for kind, name, fields in definitions:
        definition = schema.add_definition(Definition(name, DefinitionType[kind]))
        pending.append((definition, fields))

    for definition, fields in pending:
        for field in fields:
            field_name, type, value = field[:3]
            is_array = field[3] if len(field) > 3 else False
            if isinstance(type, str):
                type = schema[type].index
            definition.fields.append(Field(field_name, type, is_array, value))

    return schema


def schema_bytes(schema):
    out = io.BytesIO()
    schema.write_binary_schema(out)
    return out.getvalue()


def encode(schema, root, value):
    out = io.BytesIO()
    schema.write_data(out, root, value)
    return out.getvalue()


def decode(schema, root, data, reader_schema=None):
    return schema.read_data(io.BytesIO(data), root, reader_schema)


def commands_blob(*commands):
    """Path command blob from (opcode, coordinates...) tuples."""
    data = b''
    for opcode, *coordinates in commands:
        data += bytes([opcode])
        for coordinate in coordinates:
            data += struct.pack("<f", coordinate)
    return data


def guid(session, local):
    return {"sessionID": session, "localID": local}


def node_change(session, local, type, parent=None, position="", **fields):
    change = {"guid": guid(session, local), "type": type}
    if parent is not None:
        change["parentIndex"] = {"guid": guid(*parent), "position": position}
    change.update(fields)
    return change


def make_figma_schema():
    return build_schema(
        ("Enum", "NodeType", [
            ("NONE", None, 0),
            ("DOCUMENT", None, 1),
            ("CANVAS", None, 2),
            ("FRAME", None, 4),
            ("VECTOR", None, 6),
            ("RECTANGLE", None, 10),
            ("TEXT", None, 13),
            ("FUTURE_THING", None, 99),
        ]),
        ("Enum", "BlendMode", [
            ("PASS_THROUGH", None, 0),
            ("NORMAL", None, 1),
            ("DARKEN", None, 2),
        ]),
        ("Struct", "GUID", [
            ("sessionID", FieldType.Uint, 1),
            ("localID", FieldType.Uint, 2),
        ]),
        ("Struct", "Vector", [
            ("x", FieldType.Float, 1),
            ("y", FieldType.Float, 2),
        ]),
        ("Message", "ParentIndex", [
            ("guid", "GUID", 1),
            ("position", FieldType.String, 2),
        ]),
        ("Message", "Paint", [
            ("type", FieldType.String, 1),
            ("opacity", FieldType.Float, 2),
            ("visible", FieldType.Bool, 3),
            ("blendMode", "BlendMode", 4),
        ]),
        ("Message", "Path", [
            ("windingRule", FieldType.String, 1),
            ("commandsBlob", FieldType.Uint, 2),
        ]),
        ("Message", "Image", [
            ("hash", FieldType.Byte, 1, True),
            ("name", FieldType.String, 2),
        ]),
        ("Message", "NodeChange", [
            ("guid", "GUID", 1),
            ("parentIndex", "ParentIndex", 2),
            ("type", "NodeType", 3),
            ("name", FieldType.String, 4),
            ("blendMode", "BlendMode", 5),
            ("opacity", FieldType.Float, 6),
            ("visible", FieldType.Bool, 7),
            ("size", "Vector", 8),
            ("fillPaints", "Paint", 9, True),
            ("internalOnly", FieldType.Bool, 10),
            ("fillGeometry", "Path", 11, True),
            ("image", "Image", 12),
            ("cornerRadius", FieldType.Float, 13),
            ("rectangleTopLeftCornerRadius", FieldType.Float, 14),
        ]),
        ("Message", "Blob", [
            ("bytes", FieldType.Byte, 1, True),
        ]),
        ("Message", "Message", [
            ("type", FieldType.Uint, 1),
            ("sessionID", FieldType.Uint, 2),
            ("nodeChanges", "NodeChange", 3, True),
            ("blobs", "Blob", 4, True),
        ]),
    )


@pytest.fixture
def figma_schema():
    return make_figma_schema()


@pytest.fixture
def tree_schema():
    """Single self-referencing message type."""
    return build_schema(
        ("Message", "Node", [
            ("id", FieldType.Int, 1),
            ("children", "Node", 2, True),
        ]),
    )


@pytest.fixture
def figma_message():
    """Document with a canvas holding two shapes and an internal node."""
    return {
        "type": 0,
        "sessionID": 7,
        "nodeChanges": [
            node_change(0, 0, "DOCUMENT", name="Document"),
            node_change(0, 1, "CANVAS", parent=(0, 0), position="!", name="Page 1"),
            node_change(
                1, 3, "RECTANGLE", parent=(0, 1), position="#", name="Second",
                blendMode="NORMAL", opacity=1.0, visible=True,
                size={"x": 100.0, "y": 50.0},
                fillPaints=[
                    {"type": "SOLID", "opacity": 1.0, "visible": True, "blendMode": "NORMAL"},
                    {"type": "SOLID", "opacity": 0.5, "visible": False},
                ],
                cornerRadius=4.0,
                rectangleTopLeftCornerRadius=4.0,
            ),
            node_change(
                1, 2, "VECTOR", parent=(0, 1), position="\"", name="First",
                blendMode="DARKEN",
                fillGeometry=[{"windingRule": "NONZERO", "commandsBlob": 0}],
            ),
            node_change(1, 4, "FRAME", parent=(0, 1), position="$", internalOnly=True, name="Hidden"),
            node_change(1, 5, "TEXT", parent=(1, 4), position="!", name="Hidden child"),
        ],
        "blobs": [
            {"bytes": commands_blob((1, 0.0, 0.0), (2, 10.0, 0.0), (0,))},
        ],
    }
