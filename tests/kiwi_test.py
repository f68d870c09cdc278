"""Unit tests for the kiwi schema model, decoder and encoder."""

import io

import pytest

from fig2json import kiwi
from fig2json.kiwi import Schema, DefinitionType, FieldType, BOOTSTRAP_SCHEMA
from fig2json.values import Record, to_json
from fig2json.errors import MalformedSchema, TruncatedStream, UnknownRootType, UnknownTag, TypeMismatch

from conftest import build_schema, schema_bytes, encode, decode


def written(write, value):
    out = io.BytesIO()
    write(out, value)
    return out.getvalue()


class TestPrimitives:
    """Tests for the primitive wire encodings."""

    @pytest.mark.parametrize("data, value", [
        (b'\x00', 0),
        (b'\x7f', 127),
        (b'\x80\x01', 128),
        (b'\xac\x02', 300),
        (b'\xff\xff\xff\xff\x0f', 0xffffffff),
    ])
    def test_reads_uint(self, data, value):
        """Test varint decoding."""
        assert kiwi.read_uint(io.BytesIO(data)) == value

    def test_writes_uint(self):
        """Test varint encoding."""
        assert written(kiwi.write_uint, 300) == b'\xac\x02'

    @pytest.mark.parametrize("data, value", [
        (b'\x00', 0),
        (b'\x01', -1),
        (b'\x02', 1),
        (b'\x03', -2),
    ])
    def test_reads_zigzag_int(self, data, value):
        """Test zig-zag decoding of signed integers."""
        assert kiwi.read_int(io.BytesIO(data)) == value

    def test_writes_zigzag_int(self):
        """Test zig-zag encoding of negative integers."""
        assert written(kiwi.write_int, -1) == b'\x01'
        assert written(kiwi.write_int, -2) == b'\x03'

    def test_uint64_uses_full_ninth_byte(self):
        """Test the largest 64-bit value round-trips through nine bytes."""
        data = written(kiwi.write_uint64, 2 ** 64 - 1)
        assert len(data) == 9
        assert kiwi.read_uint64(io.BytesIO(data)) == 2 ** 64 - 1

    def test_int64_negative(self):
        """Test signed 64-bit values."""
        data = written(kiwi.write_int64, -5)
        assert kiwi.read_int64(io.BytesIO(data)) == -5

    def test_zero_float_is_single_byte(self):
        """Test the one-byte encoding of zero."""
        assert written(kiwi.write_float, 0.0) == b'\x00'
        assert kiwi.read_float(io.BytesIO(b'\x00')) == 0.0

    def test_float_bit_rotation(self):
        """Test floats are stored with the exponent in the first byte."""
        assert written(kiwi.write_float, 1.0) == b'\x7f\x00\x00\x00'
        assert kiwi.read_float(io.BytesIO(b'\x7f\x00\x00\x00')) == 1.0
        assert kiwi.read_float(io.BytesIO(written(kiwi.write_float, -2.5))) == -2.5

    def test_reads_string(self):
        """Test null-terminated UTF-8 strings."""
        stream = io.BytesIO("héllo\0rest".encode("utf8"))
        assert kiwi.read_string(stream) == "héllo"
        assert stream.read() == b'rest'

    def test_unterminated_string(self):
        """Test a string without terminator is truncated."""
        with pytest.raises(TruncatedStream):
            kiwi.read_string(io.BytesIO(b'abc'))

    def test_invalid_utf8_string(self):
        """Test invalid UTF-8 is a type mismatch."""
        with pytest.raises(TypeMismatch) as info:
            kiwi.read_string(io.BytesIO(b'\xff\x00'))
        assert info.value.offset == 0

    def test_invalid_bool(self):
        """Test bool bytes other than 0 and 1 are rejected."""
        with pytest.raises(TypeMismatch):
            kiwi.read_bool(io.BytesIO(b'\x02'))

    def test_end_of_stream(self):
        """Test reading past the end reports the offset."""
        with pytest.raises(TruncatedStream) as info:
            kiwi.read_uint(io.BytesIO(b'\x80'))
        assert info.value.offset == 1


class TestSchemaDecoder:
    """Tests for decoding binary schemas."""

    def test_bootstrap_schema_shape(self):
        """Test the schema describing schemas."""
        assert [d.name for d in BOOTSTRAP_SCHEMA.definitions] == ["Field", "Definition", "Schema"]
        assert BOOTSTRAP_SCHEMA["Definition"].field_by_name("fields").type == BOOTSTRAP_SCHEMA["Field"].index

    def test_hand_assembled_schema(self):
        """Test decoding a schema written byte by byte."""
        data = b'\x01' + b'Color\x00' + b'\x01' + b'\x01' + b'r\x00' + b'\x09' + b'\x00' + b'\x01'
        schema = Schema.from_bytes(data)
        color = schema["Color"]
        assert color.type == DefinitionType.Struct
        assert color.index == 0
        assert color.fields[0].name == "r"
        assert color.fields[0].type == FieldType.Float
        assert not color.fields[0].is_array

    def test_round_trip(self, figma_schema):
        """Test an encoded schema decodes to the same definitions."""
        decoded = Schema.from_bytes(schema_bytes(figma_schema))
        assert len(decoded) == len(figma_schema)
        for original, copy in zip(figma_schema.definitions, decoded.definitions):
            assert copy.name == original.name
            assert copy.type == original.type
            assert [(f.name, f.type, f.is_array, f.value) for f in copy.fields] == \
                [(f.name, f.type, f.is_array, f.value) for f in original.fields]

    def test_enum_fields_have_no_type(self, figma_schema):
        """Test enum values carry no field type."""
        decoded = Schema.from_bytes(schema_bytes(figma_schema))
        assert all(field.type is None for field in decoded["BlendMode"].fields)
        assert decoded["BlendMode"].enum_name(1) == "NORMAL"

    def test_forward_reference(self):
        """Test fields may reference definitions declared later."""
        schema = build_schema(
            ("Message", "Outer", [("inner", "Inner", 1)]),
            ("Struct", "Inner", [("value", FieldType.Uint, 1)]),
        )
        decoded = Schema.from_bytes(schema_bytes(schema))
        assert decoded["Outer"].fields[0].type == 1
        assert decode(decoded, "Outer", b'\x01\x05\x00')["inner"]["value"] == 5

    def test_invalid_kind(self):
        """Test an unknown definition kind."""
        data = b'\x01' + b'Bad\x00' + b'\x07' + b'\x00'
        with pytest.raises(MalformedSchema) as info:
            Schema.from_bytes(data)
        assert info.value.type_name == "Bad"
        assert info.value.offset == 1

    def test_duplicate_tag(self):
        """Test field tags must be unique within a definition."""
        schema = build_schema(
            ("Message", "Thing", [("a", FieldType.Uint, 1), ("b", FieldType.Uint, 1)]),
        )
        with pytest.raises(MalformedSchema) as info:
            Schema.from_bytes(schema_bytes(schema))
        assert info.value.tag == 1
        assert info.value.type_name == "Thing"

    def test_dangling_reference(self):
        """Test a field referencing a missing definition."""
        schema = build_schema(("Message", "Thing", [("a", FieldType.Uint, 1)]))
        schema["Thing"].fields[0].type = 5
        with pytest.raises(MalformedSchema):
            Schema.from_bytes(schema_bytes(schema))

    def test_recursive_struct(self):
        """Test a struct containing itself has no finite encoding."""
        schema = build_schema(("Struct", "A", [("a", "A", 0)]))
        with pytest.raises(MalformedSchema) as info:
            Schema.from_bytes(schema_bytes(schema))
        assert info.value.type_name == "A"

    def test_struct_cycle(self):
        """Test structs containing each other."""
        schema = build_schema(
            ("Struct", "A", [("x", FieldType.Uint, 0), ("b", "B", 1)]),
            ("Struct", "B", [("a", "A", 0)]),
        )
        with pytest.raises(MalformedSchema) as info:
            Schema.from_bytes(schema_bytes(schema))
        assert "Recursive nesting" in info.value.message

    def test_recursion_through_arrays_and_messages(self):
        """Test arrays and messages can refer back to their own type."""
        schema = build_schema(
            ("Struct", "A", [("items", "A", 0, True), ("m", "M", 1)]),
            ("Message", "M", [("a", "A", 1), ("m", "M", 2)]),
        )
        decoded = Schema.from_bytes(schema_bytes(schema))
        assert to_json(decode(decoded, "A", b'\x00\x00')) == {"items": [], "m": {}}

    def test_unknown_builtin_type(self):
        """Test a negative type code outside the builtin range."""
        data = b'\x01' + b'Thing\x00' + b'\x01' + b'\x01' + b'a\x00' + b'\x13' + b'\x00' + b'\x01'
        with pytest.raises(MalformedSchema):
            Schema.from_bytes(data)

    def test_truncated_schema(self, figma_schema):
        """Test a cut schema blob is malformed rather than truncated."""
        data = schema_bytes(figma_schema)
        with pytest.raises(MalformedSchema):
            Schema.from_bytes(data[:len(data) // 2])

    def test_text_schema(self, figma_schema):
        """Test the kiwi text syntax dump."""
        out = io.StringIO()
        figma_schema.write_text_schema(out)
        text = out.getvalue()
        assert "enum BlendMode {\n    PASS_THROUGH = 0;" in text
        assert "struct GUID {\n    uint sessionID;" in text
        assert "    Paint[] fillPaints = 9;" in text


class TestSchemaLookup:
    """Tests for resolving root types."""

    def test_resolve_by_name_and_index(self, figma_schema):
        """Test roots given as name, index or definition."""
        paint = figma_schema["Paint"]
        assert figma_schema.resolve("Paint") is paint
        assert figma_schema.resolve(paint.index) is paint
        assert figma_schema.resolve(paint) is paint

    @pytest.mark.parametrize("root", ["Missing", 100, -1])
    def test_unknown_root(self, figma_schema, root):
        """Test roots absent from the schema."""
        with pytest.raises(UnknownRootType):
            figma_schema.resolve(root)

    def test_figma_root_definition(self, figma_schema):
        """Test the document message is found."""
        assert figma_schema.root_definition().name == "Message"

    def test_missing_figma_root(self, tree_schema):
        """Test schemas without a document message."""
        with pytest.raises(UnknownRootType):
            tree_schema.root_definition()


class TestDataDecoder:
    """Tests for decoding data blobs."""

    def test_message_round_trip(self, figma_schema):
        """Test decoding what the encoder wrote."""
        value = {"type": "SOLID", "opacity": 0.5, "visible": False, "blendMode": "DARKEN"}
        record = decode(figma_schema, "Paint", encode(figma_schema, "Paint", value))
        assert isinstance(record, Record)
        assert record.type_name == "Paint"
        assert dict(record.items()) == value

    def test_fields_keep_wire_order(self, figma_schema):
        """Test message fields appear in the order they were written."""
        data = b'\x03\x01' + b'\x01SOLID\x00' + b'\x00'
        record = decode(figma_schema, "Paint", data)
        assert list(record) == ["visible", "type"]

    def test_absent_fields_are_missing(self, figma_schema):
        """Test message fields not on the wire are not defaulted."""
        record = decode(figma_schema, "Paint", b'\x00')
        assert len(record) == 0
        assert "opacity" not in record

    def test_struct_fields(self, figma_schema):
        """Test structs read every field in declaration order."""
        record = decode(figma_schema, "GUID", b'\x03\x2a')
        assert record["sessionID"] == 3
        assert record["localID"] == 42

    def test_byte_array(self, figma_schema):
        """Test byte arrays decode to bytes."""
        record = decode(figma_schema, "Image", b'\x01\x03abc' + b'\x00')
        assert record["hash"] == b'abc'

    def test_out_of_range_enum(self, figma_schema):
        """Test unknown enum values are kept as integers."""
        record = decode(figma_schema, "Paint", b'\x04\x09\x00')
        assert record["blendMode"] == 9

    def test_unknown_tag(self, figma_schema):
        """Test a tag the writer schema does not declare."""
        with pytest.raises(UnknownTag) as info:
            decode(figma_schema, "Paint", b'\x1f\x01\x00')
        assert info.value.tag == 31
        assert info.value.type_name == "Paint"
        assert info.value.offset == 0

    def test_nested_error_context(self, figma_schema):
        """Test errors name the innermost type and tag."""
        data = b'\x01' + b'\x05'
        with pytest.raises(TruncatedStream) as info:
            decode(figma_schema, "ParentIndex", data)
        assert info.value.type_name == "GUID"
        assert "GUID" in str(info.value)

    def test_array_count_larger_than_data(self, figma_schema):
        """Test absurd array counts fail before allocating."""
        data = b'\x09\xff\xff\xff\xff\x0f'
        with pytest.raises(TruncatedStream):
            decode(figma_schema, "NodeChange", data)

    def test_nesting_limit(self, tree_schema):
        """Test data nested past the limit fails with context."""
        levels = kiwi.DataReader.max_depth
        data = b'\x02\x01' * levels + b'\x00' * (levels + 1)
        with pytest.raises(TypeMismatch) as info:
            decode(tree_schema, "Node", data)
        assert info.value.type_name == "Node"
        assert info.value.offset == 2 * levels

    def test_nesting_below_limit(self, tree_schema):
        """Test moderately deep data decodes."""
        data = b'\x02\x01' * 20 + b'\x00' * 21
        record = decode(tree_schema, "Node", data)
        for i in range(20):
            record, = record["children"]
        assert len(record) == 0

    def test_trailing_bytes_ignored(self, figma_schema):
        """Test data after the root value is ignored."""
        record = decode(figma_schema, "Paint", b'\x03\x01\x00' + b'garbage')
        assert record["visible"] is True

    def test_decoding_is_deterministic(self, figma_schema, figma_message):
        """Test decoding the same bytes twice gives equal trees."""
        data = encode(figma_schema, "Message", figma_message)
        assert decode(figma_schema, "Message", data) == decode(figma_schema, "Message", data)

    def test_one_byte_truncation(self, figma_schema, figma_message):
        """Test cutting the last byte is always a truncation."""
        data = encode(figma_schema, "Message", figma_message)
        with pytest.raises(TruncatedStream):
            decode(figma_schema, "Message", data[:-1])

    def test_every_prefix_is_truncated(self, figma_schema):
        """Test no prefix of a blob decodes to a shorter tree."""
        value = {
            "guid": {"sessionID": 1, "localID": 2},
            "name": "Frame",
            "opacity": 0.25,
            "size": {"x": 3.0, "y": 4.0},
            "fillPaints": [{"type": "SOLID", "visible": True}],
            "image": {"hash": b'\x01\x02'},
        }
        data = encode(figma_schema, "NodeChange", value)
        for length in range(len(data)):
            with pytest.raises(TruncatedStream):
                decode(figma_schema, "NodeChange", data[:length])


class TestReaderSchema:
    """Tests for decoding with a reader schema."""

    @pytest.fixture
    def writer(self):
        return build_schema(
            ("Message", "Thing", [
                ("a", FieldType.Uint, 1),
                ("b", FieldType.String, 2),
                ("c", "Point", 3, True),
                ("d", FieldType.Bool, 4),
            ]),
            ("Struct", "Point", [("x", FieldType.Float, 1), ("y", FieldType.Float, 2)]),
        )

    @pytest.fixture
    def data(self, writer):
        return encode(writer, "Thing", {
            "a": 1,
            "b": "new field",
            "c": [{"x": 1.0, "y": 2.0}, {"x": 3.0, "y": 4.0}],
            "d": True,
        })

    def test_unknown_fields_are_skipped(self, writer, data):
        """Test fields the reader lacks are decoded for length and dropped."""
        reader = build_schema(
            ("Message", "Thing", [("a", FieldType.Uint, 1), ("d", FieldType.Bool, 4)]),
        )
        record = decode(writer, "Thing", data, reader)
        assert dict(record.items()) == {"a": 1, "d": True}
        assert record.definition is reader["Thing"]

    def test_skipped_fields_without_reader_schema(self, writer, data):
        """Test the same data shows every field without a reader schema."""
        record = decode(writer, "Thing", data)
        assert list(record) == ["a", "b", "c", "d"]

    def test_reader_field_names_are_used(self, writer, data):
        """Test fields are matched by tag and named by the reader."""
        reader = build_schema(
            ("Message", "Thing", [("count", FieldType.Uint, 1)]),
        )
        record = decode(writer, "Thing", data, reader)
        assert dict(record.items()) == {"count": 1}

    def test_kind_mismatch(self, writer, data):
        """Test a reader disagreeing on a field kind."""
        reader = build_schema(
            ("Message", "Thing", [("a", FieldType.Uint, 1), ("b", FieldType.Uint, 2)]),
        )
        with pytest.raises(TypeMismatch) as info:
            decode(writer, "Thing", data, reader)
        assert info.value.tag == 2

    def test_array_mismatch(self, writer, data):
        """Test a reader disagreeing on array-ness."""
        reader = build_schema(
            ("Message", "Thing", [("c", "Point", 3)]),
            ("Struct", "Point", [("x", FieldType.Float, 1), ("y", FieldType.Float, 2)]),
        )
        with pytest.raises(TypeMismatch):
            decode(writer, "Thing", data, reader)


class TestDataWriter:
    """Tests for the kiwi encoder."""

    def test_struct_requires_all_fields(self, figma_schema):
        """Test structs cannot omit fields."""
        with pytest.raises(ValueError):
            encode(figma_schema, "GUID", {"sessionID": 1})

    def test_invalid_enum_name(self, figma_schema):
        """Test unknown enum names are rejected."""
        with pytest.raises(ValueError):
            encode(figma_schema, "Paint", {"blendMode": "NOPE"})

    def test_base64_byte_array(self, figma_schema):
        """Test byte arrays given as base64 text."""
        assert encode(figma_schema, "Image", {"hash": "AQI="}) == b'\x01\x02\x01\x02\x00'
