import io
import enum
import struct

from ..errors import TruncatedStream


class Endian(enum.Enum):
    Big = ">"
    Little = "<"


class Type(enum.Enum):
    Uint8 = "B"
    Int16 = "h"
    Uint16 = "H"
    Int32 = "i"
    Uint32 = "I"
    Int64 = "q"
    Uint64 = "Q"
    Float32 = "f"
    Float64 = "d"


class BinStream:
    """!
    Fixed-width reader over a byte buffer.

    `read_uint32le()`, `read_float32le()` and friends are resolved from the
    method name. Short reads raise TruncatedStream with the offset at which
    the value started.
    """
    def __init__(self, wrapped=None, endian: Endian = None):
        if isinstance(wrapped, (bytes, bytearray, memoryview)):
            wrapped = io.BytesIO(bytes(wrapped))
        elif wrapped is None:
            wrapped = io.BytesIO()

        self.wrapped = wrapped
        self.endian = endian

    def tell(self):
        return self.wrapped.tell()

    def read(self, type: Type|str|int, endian: Endian|None = None):
        if isinstance(type, int):
            return self.read_bytes(type)

        f, length = self.struct_format(type, endian)
        raw = self.read_bytes(length)
        return struct.unpack(f, raw)[0]

    def read_bytes(self, size):
        offset = self.tell()
        raw = self.wrapped.read(size)
        if len(raw) != size:
            raise TruncatedStream(
                "Expected %s bytes, found %s" % (size, len(raw)),
                offset=offset
            )
        return raw

    def write(self, value, type: Type|str|None, endian: Endian|None = None):
        if type is None:
            self.wrapped.write(value)
            return

        f = self.struct_format(type, endian)[0]
        self.wrapped.write(struct.pack(f, value))

    def type_from_string(self, type_str: str):
        type_str = type_str.lower()

        endian = None
        if type_str.endswith("e"):
            if type_str[-2] == "l":
                endian = Endian.Little
            elif type_str[-2] == "b":
                endian = Endian.Big
            type_str = type_str[:-2]

        type = Type[type_str.title()]

        return type, endian

    def struct_format(self, type: Type|str, endian: Endian|None = None):
        if isinstance(type, str):
            type, endian = self.type_from_string(type)

        length = int("".join(c for c in type.name if c.isdigit())) // 8
        if endian is None:
            endian = self.endian
            if endian is None:
                raise ValueError("Missing endianness")

        return (endian.value + type.value), length

    def __getattr__(self, name: str):
        if name.startswith("read_"):
            type, endian = self.type_from_string(name.split("_", 1)[-1])
            def reader():
                return self.read(type, endian)
            return reader
        elif name.startswith("write_"):
            type, endian = self.type_from_string(name.split("_", 1)[-1])
            def writer(value):
                return self.write(value, type, endian)
            return writer

        raise AttributeError(name)

    def skip(self, size):
        self.read_bytes(size)

    def remaining(self):
        pos = self.tell()
        end = self.wrapped.seek(0, io.SEEK_END)
        self.wrapped.seek(pos)
        return end - pos

    @property
    def at_end(self):
        return self.remaining() == 0

    def getvalue(self):
        return self.wrapped.getvalue()
