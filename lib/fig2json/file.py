import io
import re
import enum
import zlib
import json
import base64
import logging
import zipfile
import dataclasses
import PIL.Image

from .kiwi import Schema
from .utils.binstream import BinStream, Endian
from .errors import (
    ContainerError, InvalidHeader, FileTooSmall, IncompleteChunk, NotEnoughChunks, CanvasNotFound, TruncatedStream
)


logger = logging.getLogger(__name__)

ZSTD_MAGIC = b'\x28\xb5\x2f\xfd'
PNG_MAGIC = b'\x89P'
JPEG_MAGIC = b'\xff\xd8'
ZIP_MAGIC = b'PK'
HEADER_SIZE = 12


class FileType(enum.Enum):
    Figma = b'fig-kiwi'
    FigJam = b'fig-jam.'

    @property
    def label(self):
        return self.name.lower()


def inflate_raw(data):
    decompress = zlib.decompressobj(-15)
    decompressed_data = decompress.decompress(data)
    decompressed_data += decompress.flush()
    return decompressed_data


def deflate_raw(data):
    compress = zlib.compressobj(
        zlib.Z_DEFAULT_COMPRESSION,
        zlib.DEFLATED,
        -15,
        memLevel=8,
        strategy=zlib.Z_DEFAULT_STRATEGY
    )
    compressed_data = compress.compress(data)
    compressed_data += compress.flush()
    return compressed_data


def is_already_compressed(data):
    return data[:2] in (PNG_MAGIC, JPEG_MAGIC)


def decompress_chunk(data):
    if is_already_compressed(data):
        return data

    if data.startswith(ZSTD_MAGIC):
        raise ContainerError("Zstandard compressed chunks are not supported")

    try:
        return inflate_raw(data)
    except zlib.error as e:
        raise ContainerError("Failed to decompress chunk: %s" % e) from e


def detect_file_type(data):
    if len(data) < 8:
        raise FileTooSmall(8, len(data))

    try:
        return FileType(bytes(data[:8]))
    except ValueError:
        raise InvalidHeader(bytes(data[:8]))


def extract_chunks(data):
    """!
    Splits a raw container into its version and length-prefixed chunks
    """
    if len(data) < HEADER_SIZE:
        raise FileTooSmall(HEADER_SIZE, len(data))

    stream = BinStream(data, Endian.Little)
    stream.skip(8)
    version = stream.read_uint32le()

    chunks = []
    while stream.remaining() >= 4:
        offset = stream.tell()
        size = stream.read_uint32le()
        try:
            chunks.append(stream.read_bytes(size))
        except TruncatedStream:
            raise IncompleteChunk(offset, size, len(data) - offset - 4)

    if stream.remaining():
        logger.debug("Ignoring %s trailing bytes after the last chunk", stream.remaining())

    if len(chunks) < 2:
        raise NotEnoughChunks(2, len(chunks))

    return version, chunks


@dataclasses.dataclass
class Asset:
    name: str
    data: bytes
    format: str = None
    width: int = None
    height: int = None

    @classmethod
    def from_bytes(cls, name, data):
        asset = cls(name, data)
        try:
            with PIL.Image.open(io.BytesIO(data)) as image:
                asset.format = image.format
                asset.width, asset.height = image.size
        except PIL.UnidentifiedImageError:
            logger.warning("Could not identify image asset %s", name)
        return asset

    def to_json(self):
        return {
            "format": self.format,
            "width": self.width,
            "height": self.height,
        }


class FigmaFile:
    def __init__(self):
        self.file_type = FileType.Figma
        self.version = None
        self.schema_bytes = None
        self.data_bytes = None
        self.extra_chunks = []
        self.assets = {}
        self.meta = None
        self.thumbnail = None
        self._schema = None

    @property
    def schema(self):
        if self._schema is None:
            self._schema = Schema.from_bytes(self.schema_bytes)
        return self._schema

    def load_data(self, file):
        data = file.read()
        self.file_type = detect_file_type(data)
        self.version, chunks = extract_chunks(data)
        self.schema_bytes = decompress_chunk(chunks[0])
        self.data_bytes = decompress_chunk(chunks[1])
        self.extra_chunks = [decompress_chunk(chunk) for chunk in chunks[2:]]
        self._schema = None
        logger.debug(
            "Loaded %s container version %s: schema %s bytes, data %s bytes, %s extra chunks",
            self.file_type.label, self.version, len(self.schema_bytes), len(self.data_bytes), len(self.extra_chunks)
        )

    def load_zip(self, file):
        found = False
        try:
            zf = zipfile.ZipFile(file)
        except zipfile.BadZipFile as e:
            raise ContainerError("Invalid ZIP container: %s" % e) from e

        with zf:
            for info in zf.infolist():
                if info.filename == "canvas.fig":
                    with zf.open(info) as f:
                        self.load_data(f)
                    found = True
                elif info.filename == "meta.json":
                    with zf.open(info) as f:
                        self.meta = json.load(f)
                elif info.filename == "thumbnail.png":
                    self.thumbnail = Asset.from_bytes(info.filename, zf.read(info))
                elif info.filename.startswith("images/") and not info.is_dir():
                    name = info.filename.split("/", 1)[1]
                    self.assets[name] = Asset.from_bytes(name, zf.read(info))

        if not found:
            raise CanvasNotFound()

    def load(self, file):
        header = file.read(4)
        file.seek(0)
        if header.startswith(ZIP_MAGIC):
            self.load_zip(file)
        else:
            self.load_data(file)

    @classmethod
    def from_path(cls, path):
        figma_file = cls()
        with open(path, "rb") as f:
            figma_file.load(f)
        return figma_file

    def write_data(self, file):
        file.write(self.file_type.value)

        BinStream(file, Endian.Little).write_uint32le(self.version or 0)

        for chunk in [self.schema_bytes, self.data_bytes] + self.extra_chunks:
            self._write_chunk(file, chunk)

    def _write_chunk(self, file, data):
        data = deflate_raw(data)
        BinStream(file, Endian.Little).write_uint32le(len(data))
        file.write(data)

    def write_zip(self, file):
        with zipfile.ZipFile(file, "w") as zf:
            if self.meta is not None:
                zf.writestr("meta.json", json.dumps(self.meta))

            if self.thumbnail:
                zf.writestr("thumbnail.png", self.thumbnail.data)

            for name, asset in self.assets.items():
                zf.writestr("images/" + name, asset.data)

            with zf.open("canvas.fig", "w") as f:
                self.write_data(f)

    def load_clipboard_data(self, html):
        match = re.search(r'\(figma\)(.*)\(/figma\)', html, re.S)
        if not match:
            return False

        base_encoded = match.group(1)
        data = base64.b64decode(base_encoded)
        self.load_data(io.BytesIO(data))
        return True
