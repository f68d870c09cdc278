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
from fig2json.errors import Fig2JsonError
from fig2json.file import FigmaFile
from fig2json.convert import convert_file
from fig2json.utils.script import open_output


parser = argparse.ArgumentParser(
    description="Convert Figma .fig files to JSON"
)
parser.add_argument(
    "file",
    type=pathlib.Path,
    help="Path to the figma file",
    nargs="?",
)
parser.add_argument(
    "--output",
    "-o",
    default=None,
    help="Path to write the JSON to (default: stdout)",
)
parser.add_argument(
    "--raw",
    default=None,
    type=pathlib.Path,
    help="Path to also write the untransformed decoded data to",
)
parser.add_argument(
    "--pretty",
    "-p",
    action="store_true",
    help="Pretty-print JSON output",
)
parser.add_argument(
    "--schema",
    "-s",
    default=None,
    type=pathlib.Path,
    help="Path to write the text schema to",
)
parser.add_argument(
    "--root",
    "-r",
    default=None,
    help="Root type to decode the data as (default: the document message)",
)
parser.add_argument(
    "--clipboard-html",
    default=None,
    type=pathlib.Path,
    help="Read the data from HTML copied out of Figma instead of a file",
)
parser.add_argument(
    "--verbose",
    "-v",
    action="store_true",
    help="Verbose output for debugging",
)

args = parser.parse_args()

logging.basicConfig(
    level=logging.DEBUG if args.verbose else logging.WARNING,
    format="%(levelname)s %(name)s: %(message)s",
)

if args.file is None and args.clipboard_html is None:
    parser.error("a figma file or --clipboard-html is required")


def dump(data, path):
    with open_output(path, "w") as f:
        json.dump(data, f, indent=4 if args.pretty else None)
        f.write("\n")


try:
    if args.clipboard_html:
        file = FigmaFile()
        if not file.load_clipboard_data(args.clipboard_html.read_text()):
            sys.stderr.write("error: no figma data in %s\n" % args.clipboard_html)
            sys.exit(1)
    else:
        file = FigmaFile.from_path(args.file)

    if args.schema:
        with open(args.schema, "w") as f:
            file.schema.write_text_schema(f)

    root = args.root
    if root is not None and root.isdigit():
        root = int(root)

    result = convert_file(file, root, raw=args.raw is not None)
except (Fig2JsonError, OSError) as e:
    sys.stderr.write("error: %s\n" % e)
    sys.exit(1)

dump(result.transformed, args.output)

if args.raw is not None:
    dump(result.raw, args.raw)
