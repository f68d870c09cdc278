import base64

from .errors import TruncatedStream
from .values import float_to_json
from .utils.binstream import BinStream, Endian


## Path opcodes: (letter, number of float coordinates)
path_commands = {
    0: ("Z", 0),
    1: ("M", 2),
    2: ("L", 2),
    3: ("Q", 4),
    4: ("C", 6),
}


def read_coordinate(stream):
    # Non-finite coordinates have no JSON form
    return float_to_json(stream.read_float32le())


def parse_commands(data):
    """!
    Decodes a path command blob into a flat list: `["M", x, y, "L", x, y, "Z"]`.

    Returns None when the blob is malformed.
    """
    stream = BinStream(data, Endian.Little)
    commands = []

    try:
        while not stream.at_end:
            opcode = stream.read_uint8le()
            if opcode not in path_commands:
                return None
            letter, arity = path_commands[opcode]
            commands.append(letter)
            for i in range(arity):
                commands.append(read_coordinate(stream))
    except TruncatedStream:
        return None

    return commands


def parse_vector_network(data):
    """!
    Decodes a vector network blob into vertices, segments and regions.

    Returns None when the blob is truncated or references missing vertices.
    """
    stream = BinStream(data, Endian.Little)

    try:
        vertex_count = stream.read_uint32le()
        segment_count = stream.read_uint32le()
        region_count = stream.read_uint32le()

        vertices = []
        for i in range(vertex_count):
            vertices.append({
                "styleID": stream.read_uint32le(),
                "x": read_coordinate(stream),
                "y": read_coordinate(stream),
            })

        segments = []
        for i in range(segment_count):
            style_id = stream.read_uint32le()
            start = {
                "vertex": stream.read_uint32le(),
                "dx": read_coordinate(stream),
                "dy": read_coordinate(stream),
            }
            end = {
                "vertex": stream.read_uint32le(),
                "dx": read_coordinate(stream),
                "dy": read_coordinate(stream),
            }
            if start["vertex"] >= vertex_count or end["vertex"] >= vertex_count:
                return None
            segments.append({"styleID": style_id, "start": start, "end": end})

        regions = []
        for i in range(region_count):
            style_and_rule = stream.read_uint32le()
            loops = []
            for j in range(stream.read_uint32le()):
                index_count = stream.read_uint32le()
                indices = [stream.read_uint32le() for k in range(index_count)]
                if any(index >= segment_count for index in indices):
                    return None
                loops.append({"segments": indices})

            regions.append({
                "styleID": style_and_rule >> 1,
                "windingRule": "NONZERO" if style_and_rule & 1 else "ODD",
                "loops": loops,
            })
    except TruncatedStream:
        return None

    return {
        "vertices": vertices,
        "segments": segments,
        "regions": regions,
    }


blob_parsers = {
    "commands": parse_commands,
    "vectorNetwork": parse_vector_network,
}


def blob_bytes(blob):
    """!
    Raw bytes of a blob entry, which may already have been materialized
    """
    data = blob.get("bytes") if hasattr(blob, "get") else None
    if isinstance(data, str):
        return base64.b64decode(data)
    if isinstance(data, list):
        return bytes(data)
    return data


def parse_blob(kind, blob):
    parser = blob_parsers.get(kind)
    data = blob_bytes(blob)
    if parser is None or data is None:
        return None
    return parser(data)
