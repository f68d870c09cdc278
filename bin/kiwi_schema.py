#!/usr/bin/env python3
import os
import sys
import pathlib
import logging
import argparse
sys.path.insert(0, os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "lib"
))
from fig2json.kiwi import Schema
from fig2json.file import FigmaFile
from fig2json.errors import Fig2JsonError
from fig2json.utils.script import open_output


parser = argparse.ArgumentParser(
    description="Convert kiwi binary schema to text"
)
parser.add_argument(
    "schema",
    type=pathlib.Path,
    help="Path to the binary schema, or to a figma file with --figma",
)
parser.add_argument(
    "--output",
    "-o",
    default=None,
    help="Path to write the schema to",
)
parser.add_argument(
    "--binary",
    "-b",
    action="store_true",
    help="Output binary schema",
)
parser.add_argument(
    "--figma",
    "-f",
    action="store_true",
    help="Read the schema embedded in a figma file",
)
parser.add_argument(
    "--verbose",
    "-v",
    action="store_true",
    help="Verbose output for debugging",
)

args = parser.parse_args()

logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

try:
    if args.figma:
        schema = FigmaFile.from_path(args.schema).schema
    else:
        with open(args.schema, "rb") as f:
            schema = Schema()
            schema.read_binary_schema(f)
except (Fig2JsonError, OSError) as e:
    sys.stderr.write("error: %s\n" % e)
    sys.exit(1)


if args.binary:
    with open_output(args.output, "wb") as f:
        schema.write_binary_schema(f)
else:
    with open_output(args.output, "w") as f:
        schema.write_text_schema(f)
