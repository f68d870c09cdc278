import io
import base64
import enum
import struct
import logging

from .errors import DecodeError, MalformedSchema, TruncatedStream, UnknownRootType, UnknownTag, TypeMismatch
from .values import Record


logger = logging.getLogger(__name__)


def read_byte(file):
    data = file.read(1)
    if not data:
        raise TruncatedStream("Unexpected end of stream", offset=file.tell())
    return data[0]


def read_bool(file):
    offset = file.tell()
    byte = read_byte(file)
    if byte > 1:
        raise TypeMismatch("Invalid bool value %s" % byte, offset=offset)
    return bool(byte)


def read_uint(file):
    result = 0
    shift = 0

    while True:
        byte = read_byte(file)

        result |= (byte & 0x7f) << shift
        shift += 7

        if not (byte & 0x80) or shift >= 35:
            return result & 0xffffffff


def read_int(file):
    uint = read_uint(file)
    if uint & 1:
        return ~(uint >> 1)
    return uint >> 1


def read_uint64(file):
    result = 0
    shift = 0

    while True:
        byte = read_byte(file)

        # The ninth byte carries a full 8 bits
        if shift == 56:
            return result | (byte << shift)

        result |= (byte & 0x7f) << shift
        shift += 7

        if not (byte & 0x80):
            return result


def read_int64(file):
    uint = read_uint64(file)
    if uint & 1:
        return ~(uint >> 1)
    return uint >> 1


def read_float(file):
    first = read_byte(file)

    if first == 0:
        return 0.0

    bits = first
    bits |= read_byte(file) << 8
    bits |= read_byte(file) << 16
    bits |= read_byte(file) << 24

    bits = ((bits << 23) | (bits >> 9)) & 0xffffffff

    return struct.unpack("<f", struct.pack("<I", bits))[0]


def read_string(file):
    offset = file.tell()
    data = bytearray()
    while True:
        b = file.read(1)
        if b == b'':
            raise TruncatedStream("Unterminated string", offset=offset)
        if b == b'\0':
            break
        data += b

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TypeMismatch("Invalid UTF-8 in string: %s" % e.reason, offset=offset) from e


def read_byte_array(file):
    offset = file.tell()
    count = read_uint(file)
    data = file.read(count)
    if len(data) != count:
        raise TruncatedStream("Byte array declares %s bytes, found %s" % (count, len(data)), offset=offset)
    return data


def write_byte(file, byte):
    file.write(bytes([byte]))


def write_bool(file, v):
    write_byte(file, 1 if v else 0)


def write_uint(file, v):
    while True:
        byte = v & 0x7f
        v >>= 7
        if v == 0:
            write_byte(file, byte)
            break

        write_byte(file, byte | 0x80)


def write_int(file, v):
    write_uint(file, ((v << 1) ^ (v >> 31)) & 0xffffffff)


def write_uint64(file, v):
    for i in range(8):
        byte = v & 0x7f
        v >>= 7
        if v == 0:
            write_byte(file, byte)
            return
        write_byte(file, byte | 0x80)
    write_byte(file, v & 0xff)


def write_int64(file, v):
    write_uint64(file, ((v << 1) ^ (v >> 63)) & 0xffffffffffffffff)


def write_float(file, v):
    bits = struct.unpack("<I", struct.pack("<f", v))[0]
    bits = ((bits >> 23) | (bits << 9)) & 0xffffffff

    if (bits & 0xff) == 0:
        file.write(b'\0')
        return

    file.write(bytes([
        bits & 0xff,
        (bits >> 8) & 0xff,
        (bits >> 16) & 0xff,
        (bits >> 24) & 0xff,
    ]))


def write_string(file, v: str):
    file.write(v.encode("utf8"))
    file.write(b'\0')


def write_array(file, v, item_write_func):
    write_uint(file, len(v))

    for item in v:
        item_write_func(file, item)


def write_byte_array(file, v):
    write_uint(file, len(v))
    file.write(v)


class DefinitionType(enum.Enum):
    Enum = 0
    Struct = 1
    Message = 2


class FieldType(enum.Enum):
    Bool = -1
    Byte = -2
    Int = -3
    Uint = -4
    Float = -5
    String = -6
    Int64 = -7
    Uint64 = -8

    def read_value(self, file):
        if self == FieldType.Bool:
            return read_bool(file)
        if self == FieldType.Byte:
            return read_byte(file)
        if self == FieldType.Int:
            return read_int(file)
        if self == FieldType.Uint:
            return read_uint(file)
        if self == FieldType.Float:
            return read_float(file)
        if self == FieldType.String:
            return read_string(file)
        if self == FieldType.Int64:
            return read_int64(file)
        if self == FieldType.Uint64:
            return read_uint64(file)

    def write_value(self, file, v):
        if self == FieldType.Bool:
            return write_bool(file, v)
        if self == FieldType.Byte:
            return write_byte(file, v)
        if self == FieldType.Int:
            return write_int(file, v)
        if self == FieldType.Uint:
            return write_uint(file, v)
        if self == FieldType.Float:
            return write_float(file, v)
        if self == FieldType.String:
            return write_string(file, v)
        if self == FieldType.Int64:
            return write_int64(file, v)
        if self == FieldType.Uint64:
            return write_uint64(file, v)


class Field:
    """!
    Field of a definition.

    `value` is the message field tag, the enum value or the struct field
    position. `type` is a FieldType or the index of another definition.
    """
    def __init__(self, name="", type=None, is_array=False, value=0):
        self.name = name
        self.type = type
        self.is_array = is_array
        self.value = value

    @property
    def is_byte_array(self):
        return self.is_array and self.type == FieldType.Byte

    def write_binary_schema(self, file):
        write_string(file, self.name)
        if self.type is None:
            write_int(file, 0)
        else:
            write_int(file, self.type.value if isinstance(self.type, FieldType) else self.type)
        write_bool(file, self.is_array)
        write_uint(file, self.value)

    def __repr__(self):
        return "<Field %s %s%s %s>" % (self.name, self.type, "[]" if self.is_array else "", self.value)


def write_binary_schema(file, v):
    v.write_binary_schema(file)


class Definition:
    def __init__(self, name="", type=None, fields=None):
        self.name = name
        self.type = type
        self.fields = fields if fields is not None else []
        self.index = None
        self.offset = None
        self._by_tag = None
        self._by_name = None

    def _build_lookups(self):
        self._by_tag = {field.value: field for field in self.fields}
        self._by_name = {field.name: field for field in self.fields}

    def field_by_tag(self, tag):
        if self._by_tag is None:
            self._build_lookups()
        return self._by_tag.get(tag)

    def field_by_name(self, name):
        if self._by_name is None:
            self._build_lookups()
        return self._by_name.get(name)

    def enum_name(self, value):
        field = self.field_by_tag(value)
        if field is None:
            return None
        return field.name

    @classmethod
    def from_record(cls, record: Record):
        definition = cls()
        definition.name = record["name"]
        try:
            definition.type = DefinitionType(record["kind"])
        except ValueError:
            raise MalformedSchema(
                "Invalid definition kind %s" % record["kind"],
                type_name=definition.name
            )

        for field_record in record["fields"]:
            field = Field(
                field_record["name"],
                field_record["type"],
                field_record["isArray"],
                field_record["value"]
            )
            if definition.type == DefinitionType.Enum:
                field.type = None
            elif field.type < 0:
                try:
                    field.type = FieldType(field.type)
                except ValueError:
                    raise MalformedSchema(
                        "Invalid builtin type %s for field %s" % (field.type, field.name),
                        tag=field.value,
                        type_name=definition.name
                    )
            definition.fields.append(field)

        return definition

    def write_text_schema(self, file, schema):
        file.write("\n%s %s {\n" % (self.type.name.lower(), self.name))
        if self.type == DefinitionType.Enum:
            for field in self.fields:
                file.write("    %s = %s;\n" % (field.name, field.value))
        elif self.type == DefinitionType.Struct:
            for field in self.fields:
                file.write("    %s %s;\n" % (schema.type_name(field), field.name))
        elif self.type == DefinitionType.Message:
            for field in self.fields:
                file.write("    %s %s = %s;\n" % (schema.type_name(field), field.name, field.value))

        file.write("}\n")

    def write_binary_schema(self, file):
        write_string(file, self.name)
        write_byte(file, self.type.value)
        write_array(file, self.fields, write_binary_schema)

    def __str__(self):
        return "%s %s" % (self.type.name.lower(), self.name)

    def __repr__(self):
        return "<Definition %s>" % self


class Schema:
    """!
    Index-addressed table of definitions.

    Fields reference other definitions by index, so recursive and forward
    references need no special handling: they are looked up when the data
    decoder reaches them.
    """
    def __init__(self, definitions=None):
        self.definitions = []
        self._by_name = {}
        for definition in definitions or []:
            self.add_definition(definition)

    def add_definition(self, definition):
        definition.index = len(self.definitions)
        self.definitions.append(definition)
        self._by_name.setdefault(definition.name, definition)
        return definition

    def __getitem__(self, name):
        return self._by_name[name]

    def __contains__(self, name):
        return name in self._by_name

    def __len__(self):
        return len(self.definitions)

    def get(self, name, default=None):
        return self._by_name.get(name, default)

    def find(self, predicate):
        for definition in self.definitions:
            if predicate(definition):
                return definition
        return None

    def read_binary_schema(self, file):
        reader = DataReader(BOOTSTRAP_SCHEMA, file)
        definition_type = BOOTSTRAP_SCHEMA["Definition"]
        offset = file.tell()

        try:
            count = read_uint(file)
            for i in range(count):
                offset = file.tell()
                definition = Definition.from_record(reader.read(definition_type))
                definition.offset = offset
                if definition.name in self._by_name:
                    raise MalformedSchema("Duplicate definition %s" % definition.name, type_name=definition.name)
                self.add_definition(definition)
        except MalformedSchema as e:
            raise e.with_context(offset=offset)
        except DecodeError as e:
            raise MalformedSchema("Invalid schema: %s" % e.message, e.offset, e.tag, e.type_name) from e

        self.validate()
        return self

    @classmethod
    def from_bytes(cls, data):
        schema = cls()
        schema.read_binary_schema(io.BytesIO(data))
        return schema

    def validate(self):
        for definition in self.definitions:
            tags = set()
            for field in definition.fields:
                if field.value in tags:
                    raise MalformedSchema(
                        "Duplicate field tag %s (%s)" % (field.value, field.name),
                        offset=definition.offset,
                        tag=field.value,
                        type_name=definition.name
                    )
                tags.add(field.value)

                if definition.type == DefinitionType.Message and field.value == 0:
                    raise MalformedSchema(
                        "Message field %s uses reserved tag 0" % field.name,
                        offset=definition.offset,
                        tag=field.value,
                        type_name=definition.name
                    )

                if isinstance(field.type, int) and not isinstance(field.type, FieldType):
                    if field.type >= len(self.definitions):
                        raise MalformedSchema(
                            "Field %s references missing type %s" % (field.name, field.type),
                            offset=definition.offset,
                            tag=field.value,
                            type_name=definition.name
                        )

        done = set()
        for definition in self.definitions:
            if definition.type == DefinitionType.Struct:
                self.check_struct_nesting(definition, [], done)

    def check_struct_nesting(self, definition, path, done):
        """!
        Raises MalformedSchema when a struct contains itself through non-array fields
        """
        if definition.index in done:
            return
        if definition.index in path:
            raise MalformedSchema(
                "Recursive nesting of struct %s" % definition.name,
                offset=definition.offset,
                type_name=definition.name
            )

        path.append(definition.index)
        for field in definition.fields:
            if field.is_array or field.type is None or isinstance(field.type, FieldType):
                continue
            nested = self.definitions[field.type]
            if nested.type == DefinitionType.Struct:
                self.check_struct_nesting(nested, path, done)
        path.pop()
        done.add(definition.index)

    def write_binary_schema(self, file):
        write_array(file, self.definitions, write_binary_schema)

    def resolve(self, root):
        if isinstance(root, Definition):
            if root.index is not None and root.index < len(self.definitions) and self.definitions[root.index] is root:
                return root
            root = root.name

        if isinstance(root, int):
            if 0 <= root < len(self.definitions):
                return self.definitions[root]
        elif root in self._by_name:
            return self._by_name[root]

        raise UnknownRootType("Root type %r is not defined in the schema" % (root,))

    def root_definition(self):
        """!
        Root message of a Figma document: `Message` carrying `nodeChanges` and `blobs`
        """
        definition = self.find(
            lambda d: d.name == "Message"
            and d.field_by_name("nodeChanges") is not None
            and d.field_by_name("blobs") is not None
        )
        if definition is None:
            raise UnknownRootType("No root Message definition found in schema")
        return definition

    def read_data(self, file, root, reader_schema=None):
        definition = self.resolve(root)
        reader = DataReader(self, file, reader_schema)
        value = reader.read(definition)
        trailing = reader.remaining()
        if trailing:
            logger.debug("Ignoring %s trailing bytes after %s", trailing, definition.name)
        return value

    def write_data(self, file, root, value):
        DataWriter(self, file).write(self.resolve(root), value)

    def type_name(self, type):
        if isinstance(type, Field):
            base = self.type_name(type.type)
            if type.is_array:
                base += "[]"
            return base

        if isinstance(type, FieldType):
            return type.name.lower()
        return self.definitions[type].name

    def write_text_schema(self, file):
        for definition in self.definitions:
            definition.write_text_schema(file, self)


class DataReader:
    """!
    Decodes a data blob into the generic tree.

    The schema the blob was written with defines the wire layout. When a
    reader schema is given, fields it does not declare are decoded for
    their length and dropped.
    """
    ## Struct and message nesting allowed before decoding gives up
    max_depth = 100

    def __init__(self, schema: Schema, file, reader_schema: Schema = None):
        self.schema = schema
        self.file = file
        self.reader_schema = reader_schema
        self.depth = 0

    def remaining(self):
        pos = self.file.tell()
        end = self.file.seek(0, 2)
        self.file.seek(pos)
        return end - pos

    def reader_definition(self, definition):
        if self.reader_schema is None:
            return None
        return self.reader_schema.get(definition.name)

    def read(self, definition: Definition):
        return self.read_definition(definition, self.reader_definition(definition))

    def read_definition(self, definition, reader_def):
        if definition.type == DefinitionType.Enum:
            return self.read_enum(definition, reader_def)

        if self.depth >= self.max_depth:
            raise TypeMismatch(
                "%s is nested deeper than %s levels" % (definition.name, self.max_depth),
                offset=self.file.tell(),
                type_name=definition.name
            )

        self.depth += 1
        try:
            if definition.type == DefinitionType.Struct:
                return self.read_struct(definition, reader_def)
            return self.read_message(definition, reader_def)
        finally:
            self.depth -= 1

    def read_enum(self, definition, reader_def):
        offset = self.file.tell()
        value = read_uint(self.file)
        name = (reader_def or definition).enum_name(value)
        if name is None:
            logger.debug("Unknown value %s for enum %s at offset %s", value, definition.name, offset)
            return value
        return name

    def read_struct(self, definition, reader_def):
        record = Record(reader_def or definition)
        for field in definition.fields:
            reader_field = self.match_field(definition, field, reader_def)
            try:
                value = self.read_field(field)
            except DecodeError as e:
                raise e.with_context(tag=field.value, type_name=definition.name)
            if reader_field is not None:
                record[reader_field.name] = value
        return record

    def read_message(self, definition, reader_def):
        record = Record(reader_def or definition)
        while True:
            offset = self.file.tell()
            try:
                tag = read_uint(self.file)
            except DecodeError as e:
                raise e.with_context(type_name=definition.name)

            if tag == 0:
                return record

            field = definition.field_by_tag(tag)
            if field is None:
                raise UnknownTag(
                    "Field tag %s is not declared by %s" % (tag, definition.name),
                    offset=offset,
                    tag=tag,
                    type_name=definition.name
                )

            reader_field = self.match_field(definition, field, reader_def)
            try:
                value = self.read_field(field)
            except DecodeError as e:
                raise e.with_context(tag=tag, type_name=definition.name)

            if reader_field is not None:
                record[reader_field.name] = value

    def match_field(self, definition, field, reader_def):
        """!
        Field of the reader schema matching a written field, None to skip it
        """
        if reader_def is None:
            return field

        reader_field = reader_def.field_by_tag(field.value)
        if reader_field is None:
            logger.debug(
                "Skipping field %s (tag %s) of %s unknown to the reader schema",
                field.name, field.value, definition.name
            )
            return None

        if reader_field.is_array != field.is_array or not self.same_type(field.type, reader_field.type):
            raise TypeMismatch(
                "Field %s is written as %s but read as %s" % (
                    field.name,
                    self.schema.type_name(field),
                    self.reader_schema.type_name(reader_field),
                ),
                offset=self.file.tell(),
                tag=field.value,
                type_name=definition.name
            )

        return reader_field

    def same_type(self, written, read):
        if isinstance(written, FieldType) or isinstance(read, FieldType):
            return written == read
        return self.schema.definitions[written].name == self.reader_schema.definitions[read].name

    def read_field(self, field: Field):
        if field.is_byte_array:
            return read_byte_array(self.file)

        if isinstance(field.type, FieldType):
            read_item = field.type.read_value
        else:
            definition = self.schema.definitions[field.type]
            reader_def = self.reader_definition(definition)
            read_item = lambda file: self.read_definition(definition, reader_def)

        if field.is_array:
            return self.read_array(field, read_item)

        return read_item(self.file)

    def read_array(self, field, read_item):
        offset = self.file.tell()
        count = read_uint(self.file)
        if count > self.remaining() and not self.empty_struct(field):
            raise TruncatedStream(
                "Array %s declares %s items but only %s bytes remain" % (field.name, count, self.remaining()),
                offset=offset
            )
        return [read_item(self.file) for i in range(count)]

    def empty_struct(self, field):
        if isinstance(field.type, FieldType):
            return False
        definition = self.schema.definitions[field.type]
        return definition.type == DefinitionType.Struct and not definition.fields


class DataWriter:
    def __init__(self, schema: Schema, file):
        self.schema = schema
        self.file = file

    def write(self, definition: Definition, value):
        if definition.type == DefinitionType.Enum:
            if isinstance(value, str):
                field = definition.field_by_name(value)
                if field is None:
                    raise ValueError("Invalid value %r for enum %s" % (value, definition.name))
                value = field.value
            write_uint(self.file, value)
        elif definition.type == DefinitionType.Struct:
            for field in definition.fields:
                if field.name not in value:
                    raise ValueError("Missing field %s for struct %s" % (field.name, definition.name))
                self.write_field(field, value[field.name])
        else:
            for field in definition.fields:
                field_value = value.get(field.name)
                if field_value is not None:
                    write_uint(self.file, field.value)
                    self.write_field(field, field_value)
            write_uint(self.file, 0)

    def write_field(self, field: Field, v):
        if field.is_byte_array:
            # Raw JSON output carries byte arrays as base64
            if isinstance(v, str):
                v = base64.b64decode(v)
            return write_byte_array(self.file, v)

        if isinstance(field.type, FieldType):
            write_item = field.type.write_value
        else:
            definition = self.schema.definitions[field.type]
            write_item = lambda file, v: self.write(definition, v)

        if field.is_array:
            return write_array(self.file, v, write_item)

        return write_item(self.file, v)


def _bootstrap_schema():
    field = Definition("Field", DefinitionType.Struct, [
        Field("name", FieldType.String, False, 1),
        Field("type", FieldType.Int, False, 2),
        Field("isArray", FieldType.Bool, False, 3),
        Field("value", FieldType.Uint, False, 4),
    ])
    definition = Definition("Definition", DefinitionType.Struct, [
        Field("name", FieldType.String, False, 1),
        Field("kind", FieldType.Byte, False, 2),
        Field("fields", 0, True, 3),
    ])
    schema = Definition("Schema", DefinitionType.Struct, [
        Field("definitions", 1, True, 1),
    ])
    return Schema([field, definition, schema])


## Schema describing the binary encoding of schemas
BOOTSTRAP_SCHEMA = _bootstrap_schema()

