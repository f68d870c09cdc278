import io
import logging
import dataclasses

from .kiwi import Schema
from .file import FigmaFile, FileType
from .nodes import NodeTreeBuilder
from .pipeline import Pipeline, TransformConfig
from .values import to_json, value_kind, ValueKind


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ConversionResult:
    transformed: object
    raw: object = None
    ## Bookkeeping left out of the node tree, only filled in raw mode
    raw_extras: dict = None


class Converter:
    """!
    Decodes a schema and data blob once and produces the output trees.

    `reader_schema` restricts decoding to the fields the caller knows about,
    `config` customizes the transformation passes.
    """
    def __init__(self, config: TransformConfig = None, reader_schema: Schema = None):
        self.config = config
        self.reader_schema = reader_schema

    def decode(self, schema_bytes, data_bytes, root=None):
        schema = Schema.from_bytes(schema_bytes)
        if root is None:
            root = schema.root_definition()
        definition = schema.resolve(root)
        logger.debug("Decoding data as %s", definition.name)
        return schema.read_data(io.BytesIO(data_bytes), definition, self.reader_schema)

    def transform(self, record, tree=None):
        blobs = record.get("blobs")
        if value_kind(blobs) != ValueKind.Array:
            blobs = None

        if tree is None:
            tree = NodeTreeBuilder().build(record)
        return Pipeline(self.config).run(tree, blobs)

    def convert(self, schema_bytes, data_bytes, root=None, raw=False, version=None, file_type=FileType.Figma):
        record = self.decode(schema_bytes, data_bytes, root)

        builder = NodeTreeBuilder(keep_raw=raw)
        tree = builder.build(record)
        document = self.transform(record, tree).to_json()
        if value_kind(record.get("nodeChanges")) == ValueKind.Array:
            transformed = {
                "version": version,
                "fileType": file_type.label,
                "document": document,
            }
        else:
            transformed = document

        if not raw:
            return ConversionResult(transformed)

        raw_extras = {
            "message": builder.message_extras(record),
            "nodes": {node.id: node.raw_extras for node in tree.walk() if node.raw_extras},
        }
        return ConversionResult(transformed, to_json(record), raw_extras)


def convert_bytes(schema_bytes, data_bytes, root=None, raw=False, config=None, reader_schema=None):
    return Converter(config, reader_schema).convert(schema_bytes, data_bytes, root, raw)


def convert_file(figma_file: FigmaFile, root=None, raw=False, config=None, reader_schema=None):
    """!
    Converts a loaded container, listing its image assets next to the document
    """
    result = Converter(config, reader_schema).convert(
        figma_file.schema_bytes, figma_file.data_bytes, root, raw,
        version=figma_file.version, file_type=figma_file.file_type
    )

    if figma_file.assets and isinstance(result.transformed, dict) and "document" in result.transformed:
        result.transformed["images"] = {
            "images/" + name: asset.to_json()
            for name, asset in sorted(figma_file.assets.items())
        }

    return result
