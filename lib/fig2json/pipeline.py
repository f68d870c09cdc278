import logging
import base64
import binascii
import dataclasses

from . import blobs as blob_parsing
from .nodes import Node


logger = logging.getLogger(__name__)


def _default_values():
    return {
        "blendMode": "NORMAL",
        "opacity": 1.0,
        "visible": True,
        "rotation": 0.0,
        "uniformScaleFactor": 1.0,
        "letterSpacing": {"units": "PERCENT", "value": 0.0},
        "lineHeight": {"units": "PERCENT", "value": 100.0},
        "paragraphSpacing": 0.0,
        "paragraphIndent": 0.0,
        "postscript": "",
    }


def _line_default_values():
    return {
        "indentationLevel": 0,
        "isFirstLineOfList": False,
        "lineType": "PLAIN",
        "listStartOffset": 0,
        "sourceDirectionality": "AUTO",
        "styleId": 0,
    }


def _metadata_fields():
    return {
        "guid", "id", "guidPath", "phase", "editInfo", "pluginData", "userFacingVersion", "exportSettings",
        "documentColorProfile", "derivedSymbolData", "derivedSymbolDataLayoutVersion",
        "styleIdForFill", "styleIdForText", "styleIdForStrokeFill",
        "thumbHash", "imageThumbnail", "animationFrame", "imageShouldColorManage",
        "originalImageWidth", "originalImageHeight",
        "textBidiVersion", "textExplicitLayoutVersion", "textUserLayoutVersion", "fontVersion",
        "guides", "layoutGrids",
    }


def _derived_text_metadata():
    return {
        "glyphs", "baselines", "fontMetaData", "derivedLines", "logicalIndexToCharacterOffsetMap",
        "truncatedHeight", "truncationStartIndex",
    }


def _preserved_fields():
    return {
        "fillGeometry", "strokeGeometry", "vectorData", "vectorNetwork", "commands", "commandsBlob",
        "vectorNetworkBlob", "image", "imageRef", "paints", "fillPaints", "strokePaints", "size", "transform",
    }


@dataclasses.dataclass
class TransformConfig:
    """!
    Tables driving the transformation passes.

    `defaults` maps a field name to the value it is stripped at,
    `line_defaults` does the same for the entries of `textData.lines`.
    """
    defaults: dict = dataclasses.field(default_factory=_default_values)
    line_defaults: dict = dataclasses.field(default_factory=_line_default_values)
    metadata_fields: set = dataclasses.field(default_factory=_metadata_fields)
    derived_text_metadata: set = dataclasses.field(default_factory=_derived_text_metadata)
    preserved_fields: set = dataclasses.field(default_factory=_preserved_fields)

    @classmethod
    def default(cls):
        return cls()


def matches_default(value, default):
    """!
    Exact comparison: same type and same value, recursing into mappings
    """
    if isinstance(default, dict):
        if not isinstance(value, dict) or value.keys() != default.keys():
            return False
        return all(matches_default(value[name], item) for name, item in default.items())
    return type(value) is type(default) and value == default


def is_empty_mapping(value):
    return isinstance(value, dict) and not value


class TransformPass:
    """!
    Base for rewrite passes.

    A pass is called on a Node and returns a new Node, recursing into
    children. Field values are rebuilt rather than modified in place,
    `path` is the chain of field names leading to the mapping being
    rewritten. Opaque nodes keep their fields.
    """
    def __init__(self, config: TransformConfig = None):
        self.config = config if config is not None else TransformConfig.default()

    def __call__(self, node: Node) -> Node:
        fields = node.fields if node.opaque else self.transform_mapping(node.fields, ())
        return node.replace(fields=fields, children=self.transform_children(node.children))

    def transform_children(self, children):
        return [self(child) for child in children]

    def is_preserved(self, name):
        return name in self.config.preserved_fields

    def transform_mapping(self, mapping: dict, path: tuple):
        return {
            name: self.transform_value(value, path + (name,))
            for name, value in mapping.items()
        }

    def transform_value(self, value, path: tuple):
        if isinstance(value, dict):
            return self.transform_mapping(value, path)
        if isinstance(value, list):
            return [self.transform_value(item, path) for item in value]
        return value


class DefaultStripping(TransformPass):
    def defaults_for(self, path):
        if path[-2:] == ("textData", "lines"):
            return self.config.line_defaults
        return self.config.defaults

    def transform_mapping(self, mapping, path):
        defaults = self.defaults_for(path)
        result = {}
        for name, value in mapping.items():
            value = self.transform_value(value, path + (name,))
            if name in defaults and not self.is_preserved(name) and matches_default(value, defaults[name]):
                continue
            result[name] = value
        return result


class MetadataRemoval(TransformPass):
    def transform_mapping(self, mapping, path):
        result = {}
        for name, value in mapping.items():
            if not self.is_preserved(name):
                if name in self.config.metadata_fields:
                    continue
                if path[-1:] == ("derivedTextData",) and name in self.config.derived_text_metadata:
                    continue
            result[name] = self.transform_value(value, path + (name,))
        return result


class RedundantFieldRemoval(TransformPass):
    ## Field dropped => field it duplicates
    duplicates = {
        "rectangleTopLeftCornerRadius": "cornerRadius",
        "rectangleTopRightCornerRadius": "cornerRadius",
        "rectangleBottomLeftCornerRadius": "cornerRadius",
        "rectangleBottomRightCornerRadius": "cornerRadius",
        "stackPaddingRight": "stackHorizontalPadding",
        "stackPaddingBottom": "stackVerticalPadding",
    }
    paint_lists = ("fillPaints", "strokePaints")

    def is_redundant(self, name, value, mapping, path):
        if name in self.duplicates:
            other = self.duplicates[name]
            return other in mapping and matches_default(value, mapping[other])
        if name == "rectangleCornerRadiiIndependent":
            return value is False
        if name == "backgroundEnabled":
            return "backgroundColor" in mapping
        if name == "layoutSize":
            return path[-1:] == ("derivedTextData",)
        return False

    def transform_paints(self, paints, path):
        return [
            self.transform_value(paint, path)
            for paint in paints
            if not (isinstance(paint, dict) and paint.get("visible") is False)
        ]

    def transform_mapping(self, mapping, path):
        result = {}
        for name, value in mapping.items():
            if self.is_redundant(name, value, mapping, path):
                continue

            if name in self.paint_lists and isinstance(value, list):
                value = self.transform_paints(value, path + (name,))
                if not value:
                    continue
            else:
                value = self.transform_value(value, path + (name,))

            if is_empty_mapping(value) and not self.is_preserved(name):
                continue
            result[name] = value
        return result


class InternalNodeFiltering(TransformPass):
    def __call__(self, node):
        return node.replace(children=self.transform_children(node.children))

    def transform_children(self, children):
        kept = []
        for child in children:
            if child.internal_only:
                logger.debug("Removing internal node %s", child.id)
                continue
            kept.append(self(child))
        return kept


def hash_filename(hash):
    """!
    Image hash as an `images/<hex>` file name, None if it isn't a byte sequence
    """
    if isinstance(hash, str):
        try:
            data = base64.b64decode(hash)
        except binascii.Error:
            return None
    elif isinstance(hash, list) and all(type(byte) is int and 0 <= byte <= 255 for byte in hash):
        data = bytes(hash)
    else:
        return None
    return "images/" + base64.b16encode(data).lower().decode("ascii")


class GeometryPreservation(TransformPass):
    """!
    Resolves references kept by the preservation allow-list.

    `<kind>Blob` indices are replaced by the decoded blob under `<kind>`,
    image hashes by the file name of the image asset. References that
    cannot be resolved are left as they are.
    """
    image_fields = ("image", "imageThumbnail")

    def __init__(self, config: TransformConfig = None, blobs=None):
        super().__init__(config)
        self.blobs = blobs or []

    def resolve_blob(self, name, index):
        if type(index) is not int or not 0 <= index < len(self.blobs):
            return None
        return blob_parsing.parse_blob(name[:-len("Blob")], self.blobs[index])

    def transform_mapping(self, mapping, path):
        result = {}
        for name, value in mapping.items():
            if name.endswith("Blob"):
                parsed = self.resolve_blob(name, value)
                if parsed is not None:
                    result[name[:-len("Blob")]] = parsed
                    continue

            value = self.transform_value(value, path + (name,))

            if name in self.image_fields and isinstance(value, dict) and "hash" in value:
                filename = hash_filename(value["hash"])
                if filename is not None:
                    value = {key: item for key, item in value.items() if key != "hash"}
                    value["filename"] = filename

            result[name] = value
        return result


class Pipeline:
    """!
    Applies the rewrite passes in order
    """
    pass_types = [
        DefaultStripping,
        MetadataRemoval,
        RedundantFieldRemoval,
        InternalNodeFiltering,
    ]

    def __init__(self, config: TransformConfig = None):
        self.config = config if config is not None else TransformConfig.default()

    def passes(self, blobs=None):
        passes = [pass_type(self.config) for pass_type in self.pass_types]
        passes.append(GeometryPreservation(self.config, blobs))
        return passes

    def run(self, node: Node, blobs=None) -> Node:
        for transform in self.passes(blobs):
            node = transform(node)
        return node
