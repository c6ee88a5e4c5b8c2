"""Render the markdown reference of the configuration API."""

import argparse
import io
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Union, get_args, get_origin

from flowlogs2metrics.api import API, TAG_DOC, TAG_ENUM, TAG_YAML, get_enum_by_name


def _pad(indent):
    return " " * (4 * indent)


def _unwrap_optional(tp):
    if get_origin(tp) is Union:
        inner = [arg for arg in get_args(tp) if arg is not type(None)]
        if inner:
            return inner[0]
    return tp


def _write_entry(output, name, doc, field_type, indent):
    if not doc:
        return
    new_indent = indent + 1
    if doc.startswith("#"):
        output.write(f"\n{doc}\n")
        output.write("<pre>")
        output.write(f"\n{_pad(indent)} {name}:\n")
        iterate(output, field_type, new_indent)
        output.write("</pre>")
    else:
        output.write(f"{_pad(new_indent)} {name}: {doc}\n")
        iterate(output, field_type, new_indent)


def iterate(output, data_type, indent):
    """Write the documentation of ``data_type`` to the text stream ``output``."""
    tp = _unwrap_optional(data_type)
    origin = get_origin(tp)
    if origin in (list, tuple, set, frozenset):
        args = get_args(tp)
        if args:
            iterate(output, args[0], indent + 1)
        return
    if origin is dict:
        args = get_args(tp)
        if len(args) == 2:
            iterate(output, args[1], indent + 1)
        return
    if isinstance(tp, type) and issubclass(tp, Enum):
        for member in tp:
            _write_entry(output, member.value, getattr(member, "doc", ""), str, indent)
        return
    if isinstance(tp, type) and is_dataclass(tp):
        for f in fields(tp):
            name = f.metadata.get(TAG_YAML, f.name).replace(",omitempty", "")
            doc = f.metadata.get(TAG_DOC, "")
            enum_name = f.metadata.get(TAG_ENUM, "")
            if enum_name:
                enum_type = get_enum_by_name(enum_name)
                output.write(f"{_pad(indent + 1)} {name}: (enum) {doc}\n")
                iterate(output, enum_type, indent + 1)
                continue
            _write_entry(output, name, doc, f.type, indent)


def render_api_doc():
    """Return the documentation of the whole configuration API."""
    buffer = io.StringIO()
    iterate(buffer, API, 0)
    return buffer.getvalue()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="apitodoc", description="Print the configuration API reference as markdown."
    )
    parser.parse_args(argv)
    print(render_api_doc(), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())