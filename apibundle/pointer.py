"""JSON pointer and ``$ref`` string helpers."""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple
from urllib.parse import unquote

_ARRAY_INDEX = re.compile(r"^(0|[1-9][0-9]*)$")
_REMOTE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def escape_segment(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def unescape_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def parse_pointer(text: str) -> List[str]:
    """Split a pointer into unescaped segments.

    ``""``, ``"#"`` and ``"/"``-less empty fragments address the document
    root. A ``#``-prefixed pointer is a URI fragment and is percent-decoded
    before splitting.
    """
    if text.startswith("#"):
        text = unquote(text[1:])
    if text == "":
        return []
    if not text.startswith("/"):
        raise ValueError(f"Invalid JSON pointer: {text!r}")
    return [unescape_segment(part) for part in text[1:].split("/")]


def join_pointer(segments: Iterable[str], fragment: bool = False) -> str:
    body = "".join("/" + escape_segment(str(s)) for s in segments)
    return "#" + body if fragment else body


def array_index(segment: str) -> int:
    """Return the list index named by *segment*, or -1 when it is not one."""
    if _ARRAY_INDEX.match(segment):
        return int(segment)
    return -1


def split_ref(ref: str) -> Tuple[str, str]:
    """Split ``file.yaml#/a/b`` into ``("file.yaml", "#/a/b")``."""
    if "#" in ref:
        file_part, fragment = ref.split("#", 1)
        return file_part, "#" + fragment
    return ref, ""


def is_remote(file_part: str) -> bool:
    return bool(_REMOTE.match(file_part)) or file_part.startswith("//")
