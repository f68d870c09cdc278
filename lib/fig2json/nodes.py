import logging
import dataclasses

from . import figma
from .errors import NodeTreeError
from .values import Record, ValueKind, value_kind, to_json


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Node:
    """!
    Element of the rendering document.

    `fields` holds the JSON-compatible node properties in decode order,
    `children` the nodes owned by this one. Opaque nodes come from records
    that are not a known node variant and only carry their raw fields.
    """
    id: str = None
    fields: dict = dataclasses.field(default_factory=dict)
    children: list = dataclasses.field(default_factory=list)
    internal_only: bool = False
    opaque: bool = False
    raw_extras: dict = dataclasses.field(default_factory=dict)

    @property
    def type(self):
        return self.fields.get("type")

    @property
    def name(self):
        return self.fields.get("name")

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)

    def group(self, group):
        return {name: value for name, value in self.fields.items() if figma.field_group(name) == group}

    @property
    def geometry(self):
        return self.group("geometry")

    @property
    def style(self):
        return self.group("style")

    @property
    def text(self):
        return self.group("text")

    @property
    def layout(self):
        return self.group("layout")

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def to_json(self):
        data = dict(self.fields)
        if self.children:
            data["children"] = [child.to_json() for child in self.children]
        return data


class NodeTreeBuilder:
    """!
    Reinterprets the decoded root record as a Node hierarchy.

    Figma documents carry a flat `nodeChanges` list linked through
    `parentIndex`; other roots are walked through their `children` field.
    """
    def __init__(self, keep_raw=False):
        self.keep_raw = keep_raw

    def build(self, root: Record):
        if value_kind(root.get("nodeChanges")) == ValueKind.Array:
            return self.build_change_list(root["nodeChanges"])
        return self.build_record(root)

    def message_extras(self, root: Record):
        """!
        Root message bookkeeping, only kept in raw mode
        """
        if not self.keep_raw:
            return {}
        return {
            name: to_json(value)
            for name, value in root.items()
            if name in figma.message_bookkeeping
        }

    def is_opaque(self, record: Record):
        definition = record.definition
        if definition.name not in figma.node_definitions and definition.field_by_name(figma.child_list_field) is None:
            return True

        node_type = record.get("type")
        if node_type is None:
            return False
        return not isinstance(node_type, str) or node_type not in figma.node_type_names

    def make_node(self, record: Record, id=None):
        if self.is_opaque(record):
            return Node(
                id=id,
                fields={name: to_json(value) for name, value in record.items()},
                internal_only=record.get("internalOnly") is True,
                opaque=True,
            )

        node = Node(id=id, internal_only=record.get("internalOnly") is True)
        for name, value in record.items():
            if name == figma.child_list_field and value_kind(value) == ValueKind.Array:
                continue
            if name in figma.node_bookkeeping or value_kind(value) == ValueKind.Bytes:
                if self.keep_raw:
                    node.raw_extras[name] = to_json(value)
                continue
            node.fields[name] = to_json(value)
        return node

    def build_record(self, record: Record):
        id = record.get("id")
        node = self.make_node(record, None if id is None else str(id))
        if node.opaque:
            return node

        children = record.get(figma.child_list_field)
        if value_kind(children) == ValueKind.Array:
            node.children = [
                self.build_record(child)
                for child in children
                if value_kind(child) == ValueKind.Record
            ]
        return node

    def build_change_list(self, changes):
        records = {}
        order = []
        for change in changes:
            key = figma.guid_key(change.get("guid"))
            if key is None:
                raise NodeTreeError("Node change without a valid guid")
            if key in records:
                logger.warning("Duplicate node %s, keeping the last change", key)
            else:
                order.append(key)
            records[key] = change

        root_key = self.find_root(records, order)

        child_lists = {}
        for key in order:
            if key == root_key:
                continue
            parent_index = records[key].get("parentIndex")
            parent_key = figma.guid_key(parent_index.get("guid")) if parent_index is not None else None
            if parent_key not in records:
                logger.warning("Dropping node %s: parent %s not found", key, parent_key)
                continue
            position = parent_index.get("position") or ""
            child_lists.setdefault(parent_key, []).append((position, key))

        for children in child_lists.values():
            children.sort(key=lambda item: item[0])

        root = self.build_change_node(root_key, records, child_lists)
        built = sum(1 for node in root.walk())
        if built < len(order):
            logger.warning("%s node changes are not reachable from the root %s", len(order) - built, root_key)
        return root

    def find_root(self, records, order):
        if "0:0" in records:
            return "0:0"
        for key in order:
            if records[key].get("parentIndex") is None:
                return key
        raise NodeTreeError("No root node found in node changes")

    def build_change_node(self, key, records, child_lists):
        node = self.make_node(records[key], key)
        if node.opaque:
            return node
        node.children = [
            self.build_change_node(child_key, records, child_lists)
            for position, child_key in child_lists.get(key, [])
        ]
        return node
