import enum


class NodeType(enum.Enum):
    NONE = 0
    DOCUMENT = 1
    CANVAS = 2
    GROUP = 3
    FRAME = 4
    BOOLEAN_OPERATION = 5
    VECTOR = 6
    STAR = 7
    LINE = 8
    ELLIPSE = 9
    RECTANGLE = 10
    REGULAR_POLYGON = 11
    ROUNDED_RECTANGLE = 12
    TEXT = 13
    SLICE = 14
    SYMBOL = 15
    INSTANCE = 16
    STICKY = 17
    SHAPE_WITH_TEXT = 18
    CONNECTOR = 19
    CODE_BLOCK = 20
    WIDGET = 21
    STAMP = 22
    MEDIA = 23
    HIGHLIGHT = 24
    SECTION = 25
    SECTION_OVERLAY = 26
    WASHI_TAPE = 27
    VARIABLE = 28
    TABLE = 29
    TABLE_CELL = 30
    VARIABLE_SET = 31
    SLIDE = 32


node_type_names = frozenset(NodeType.__members__)

## Definitions whose records are always document nodes
node_definitions = frozenset(["NodeChange", "Node"])

## Field holding the child records of a self-referencing node type
child_list_field = "children"

## Root message fields that only describe the editing session
message_bookkeeping = frozenset([
    "type",
    "sessionID",
    "ackID",
    "blobBaseIndex",
    "signalName",
    "access",
    "pasteID",
    "pasteOffset",
    "pasteFileKey",
    "pasteIsPartiallyOutsideEnclosingFrame",
    "pastePageId",
    "pasteBranchSourceFileKey",
    "pasteEditorType",
    "isCut",
    "localUndoStack",
    "localRedoStack",
    "broadcasts",
    "reconnectSequenceNumber",
    "postSyncActions",
    "publishedAssetGuids",
    "dirtyFromInitialLoad",
    "nodeChangesMetadata",
    "fileVersion",
])

## Node fields consumed while assembling the tree or used only as counters
node_bookkeeping = frozenset([
    "parentIndex",
    "guidTag",
    "phaseTag",
    "parentIndexTag",
    "typeTag",
    "nameTag",
    "styleIDTag",
    "ownerIndex",
    "internalOnly",
])


def guid_key(guid):
    """!
    Formats a `GUID` record or dict as `sessionID:localID`, None when incomplete
    """
    if guid is None:
        return None
    session = guid.get("sessionID")
    local = guid.get("localID")
    if not isinstance(session, int) or not isinstance(local, int):
        return None
    return "%s:%s" % (session, local)


_group_fields = {
    "geometry": frozenset([
        "size", "transform", "fillGeometry", "strokeGeometry", "vectorData", "vectorNetwork", "commands",
        "cornerRadius", "arcData", "count", "starInnerScale", "rectangleTopLeftCornerRadius",
        "rectangleTopRightCornerRadius", "rectangleBottomLeftCornerRadius", "rectangleBottomRightCornerRadius",
    ]),
    "style": frozenset([
        "fillPaints", "strokePaints", "effects", "blendMode", "opacity", "visible", "strokeWeight",
        "strokeAlign", "strokeJoin", "strokeCap", "dashPattern", "mask", "maskType", "miterLimit",
        "backgroundColor", "backgroundOpacity", "backgroundEnabled", "cornerSmoothing",
    ]),
    "text": frozenset([
        "textData", "derivedTextData", "fontName", "fontSize", "letterSpacing", "lineHeight",
        "textAlignHorizontal", "textAlignVertical", "textAutoResize", "textCase", "textDecoration",
        "paragraphSpacing", "paragraphIndent", "fontVariations",
    ]),
    "layout": frozenset([
        "horizontalConstraint", "verticalConstraint", "layoutGrids", "guides", "resizeToFit",
        "scrollBehavior", "frameMaskDisabled", "targetAspectRatio",
    ]),
}


def field_group(name):
    for group, names in _group_fields.items():
        if name in names:
            return group
    if name.startswith("stack"):
        return "layout"
    if name.startswith("text") or name.startswith("font"):
        return "text"
    return "other"
