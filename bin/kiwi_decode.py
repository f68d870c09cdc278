#!/usr/bin/env python3
import os
import sys
import json
import pathlib
import logging
import argparse
sys.path.insert(0, os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "lib"
))
from fig2json.kiwi import Schema
from fig2json.errors import Fig2JsonError
from fig2json.convert import Converter
from fig2json.utils.script import open_output


parser = argparse.ArgumentParser(
    description="Convert kiwi data to/from JSON"
)
parser.add_argument(
    "--schema",
    type=pathlib.Path,
    required=True,
    help="Path to the binary schema",
)
parser.add_argument(
    "--reader-schema",
    type=pathlib.Path,
    default=None,
    help="Path to a binary schema listing the fields to keep",
)
parser.add_argument(
    "--output",
    "-o",
    default=None,
    help="Path to write the output to",
)
parser.add_argument(
    "--encode",
    "-e",
    action="store_true",
    help="Encode JSON data instead of decoding",
)
parser.add_argument(
    "--transform",
    "-t",
    action="store_true",
    help="Output the transformed node tree instead of the raw data",
)
parser.add_argument(
    "--root",
    "-r",
    required=True,
    help="Root type",
)
parser.add_argument(
    "data",
    type=pathlib.Path,
    help="Path to the data file",
)
parser.add_argument(
    "--verbose",
    "-v",
    action="store_true",
    help="Verbose output for debugging",
)

args = parser.parse_args()

logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

root = int(args.root) if args.root.isdigit() else args.root

try:
    schema_bytes = args.schema.read_bytes()

    if args.encode:
        schema = Schema.from_bytes(schema_bytes)
        with open(args.data, "r") as f:
            data = json.load(f)

        with open_output(args.output, "wb") as f:
            schema.write_data(f, root, data)
        sys.exit(0)

    reader_schema = None
    if args.reader_schema:
        reader_schema = Schema.from_bytes(args.reader_schema.read_bytes())

    result = Converter(reader_schema=reader_schema).convert(
        schema_bytes, args.data.read_bytes(), root, raw=not args.transform
    )
except (Fig2JsonError, OSError, ValueError) as e:
    sys.stderr.write("error: %s\n" % e)
    sys.exit(1)

with open_output(args.output, "w") as f:
    json.dump(result.transformed if args.transform else result.raw, f, indent=4)
    f.write("\n")
