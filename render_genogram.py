#!/usr/bin/env python3
import argparse
import json
import logging
import sys
from pathlib import Path

from genogram_layout_lib import GenogramLayout, LayoutSettingsError
from genogram_model import load_document


def _setting(text: str):
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected name=value, got {text!r}")
    return name.strip(), value.strip()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Compute the layout of a genogram JSON document.")
    parser.add_argument("input_json", type=Path, help="Path to the saved genogram document.")
    parser.add_argument(
        "-o",
        "--output",
        default="genogram_layout.json",
        help="Path to output layout JSON, or - for stdout (default: genogram_layout.json).",
    )
    parser.add_argument(
        "--relayout",
        action="store_true",
        help="Ignore manual positions and lay out every person automatically.",
    )
    parser.add_argument(
        "--set",
        dest="settings",
        action="append",
        type=_setting,
        default=[],
        metavar="NAME=VALUE",
        help="Override a layout setting (e.g. --set spouse_spacing=60). Repeatable.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log tolerated data problems.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    data = json.loads(args.input_json.read_text(encoding="utf-8"))
    persons, _ = load_document(data)
    if args.relayout:
        for person in persons:
            person.position = None

    try:
        layout = GenogramLayout(dict(args.settings))
    except LayoutSettingsError as e:
        parser.error(str(e))
    result = layout.compute(persons)
    text = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    if args.output == "-":
        sys.stdout.write(text + "\n")
    else:
        Path(args.output).write_text(text, encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
