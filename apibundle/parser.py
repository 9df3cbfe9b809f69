"""Position-aware JSON / YAML document parser.

Both formats are parsed into the same immutable :class:`DocumentNode` tree:

- JSON through Tree-sitter (``tree-sitter-json``), which exposes exact byte
  ranges for every value and key.
- YAML through PyYAML's composer, whose marks are converted from character
  indices to UTF-8 byte offsets.

Every node carries a ``[start, end)`` byte range into its source so findings
can be mapped to line numbers even with multi-byte characters.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

import tree_sitter_json
import yaml
from tree_sitter import Language, Parser as TSParser

from .errors import ParseError
from .pointer import array_index, parse_pointer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File-extension <-> format mapping
# ---------------------------------------------------------------------------
FORMAT_MAP: Dict[str, str] = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}

_SCALAR_TYPES = (str, int, float, bool, type(None))
_YAML_MERGE_TAG = "tag:yaml.org,2002:merge"
_UTF8_BOM = b"\xef\xbb\xbf"


def format_for(path: Path) -> str:
    """Return ``"yaml"`` for ``.yaml``/``.yml`` files and ``"json"`` otherwise."""
    return FORMAT_MAP.get(path.suffix.lower(), "json")


# ===================================================================
# Document tree
# ===================================================================

class NodeKind(str, Enum):
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


@dataclass(frozen=True)
class DocumentNode:
    """One value of a parsed document.

    ``entries`` holds ``(key, child)`` pairs in source order; sequence items
    use their decimal index as key. ``key_start`` is the offset of the key
    that introduces this node in its parent mapping, if any.
    """

    kind: NodeKind
    start: int
    end: int
    value: Any = None
    entries: Tuple[Tuple[str, "DocumentNode"], ...] = ()
    key_start: Optional[int] = None
    _index: Dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.kind is NodeKind.MAPPING:
            object.__setattr__(
                self, "_index", {key: i for i, (key, _) in enumerate(self.entries)}
            )

    def get_range(self) -> Tuple[int, int]:
        return self.start, self.end

    @property
    def line_offset(self) -> int:
        """Offset used for line reporting: the key when there is one."""
        return self.key_start if self.key_start is not None else self.start

    def keys(self) -> List[str]:
        return [key for key, _ in self.entries]

    def child(self, segment: str) -> Optional["DocumentNode"]:
        if self.kind is NodeKind.MAPPING:
            position = self._index.get(segment)
            return None if position is None else self.entries[position][1]
        if self.kind is NodeKind.SEQUENCE:
            position = array_index(segment)
            if 0 <= position < len(self.entries):
                return self.entries[position][1]
        return None

    def find_segments(self, segments: Sequence[str]) -> Optional["DocumentNode"]:
        current: Optional[DocumentNode] = self
        for segment in segments:
            current = current.child(segment)
            if current is None:
                return None
        return current

    def find(self, pointer: str) -> Optional["DocumentNode"]:
        """Look up *pointer*; returns ``None`` instead of raising when absent."""
        try:
            segments = parse_pointer(pointer)
        except ValueError:
            return None
        return self.find_segments(segments)

    def walk(self, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "DocumentNode"]]:
        """Yield ``(segments, node)`` for this node and every descendant."""
        yield prefix, self
        for key, child in self.entries:
            yield from child.walk(prefix + (key,))

    def to_value(self) -> Any:
        """Plain Python data (dict / list / scalar) for this subtree."""
        if self.kind is NodeKind.MAPPING:
            return {key: child.to_value() for key, child in self.entries}
        if self.kind is NodeKind.SEQUENCE:
            return [child.to_value() for _, child in self.entries]
        return self.value


# ===================================================================
# Abstract Parser Interface
# ===================================================================

class DocumentParser(ABC):
    """Abstract base class for the structured-document parsers."""

    format: str = ""

    @abstractmethod
    def parse(self, text: str) -> DocumentNode:
        """Parse *text* into a :class:`DocumentNode` tree or raise :class:`ParseError`."""
        ...


# ===================================================================
# JSON (Tree-sitter)
# ===================================================================

class JsonDocumentParser(DocumentParser):
    """JSON parser built on the Tree-sitter JSON grammar.

    Tree-sitter reports byte ranges for every token, so node ranges are exact
    UTF-8 offsets. String and number literals are decoded with :mod:`json` to
    get the same values the standard decoder would produce.
    """

    format = "json"

    def __init__(self) -> None:
        self._parser = TSParser(Language(tree_sitter_json.language()))

    def parse(self, text: str) -> DocumentNode:
        source = text.encode("utf-8")
        if source.startswith(_UTF8_BOM):
            # same width as whitespace, so ranges stay file offsets
            source = b" " * len(_UTF8_BOM) + source[len(_UTF8_BOM):]
        tree = self._parser.parse(source)
        root = tree.root_node

        if root.has_error:
            bad = _first_error(root)
            snippet = source[bad.start_byte:bad.start_byte + 20].decode("utf-8", errors="replace")
            reason = f"missing {bad.type}" if bad.is_missing else f"unexpected input {snippet!r}"
            raise ParseError(reason, offset=bad.start_byte)

        values = [child for child in root.named_children if child.type != "comment"]
        if not values:
            raise ParseError("document is empty", offset=0)
        if len(values) > 1:
            raise ParseError("unexpected content after the top-level value", offset=values[1].start_byte)
        return self._convert(values[0], source, None)

    def _convert(self, ts_node: Any, source: bytes, key_start: Optional[int]) -> DocumentNode:
        if ts_node.type == "object":
            entries: List[Tuple[str, DocumentNode]] = []
            seen: Set[str] = set()
            for pair in ts_node.named_children:
                if pair.type != "pair":
                    continue
                key_node = pair.child_by_field_name("key")
                value_node = pair.child_by_field_name("value")
                key = self._literal(key_node, source)
                if not isinstance(key, str):
                    key = _text(key_node, source)
                if key in seen:
                    raise ParseError(f"duplicate key {key!r}", offset=key_node.start_byte)
                seen.add(key)
                entries.append((key, self._convert(value_node, source, key_node.start_byte)))
            return DocumentNode(
                NodeKind.MAPPING, ts_node.start_byte, ts_node.end_byte,
                entries=tuple(entries), key_start=key_start,
            )

        if ts_node.type == "array":
            items = [child for child in ts_node.named_children if child.type != "comment"]
            return DocumentNode(
                NodeKind.SEQUENCE, ts_node.start_byte, ts_node.end_byte,
                entries=tuple((str(i), self._convert(item, source, None)) for i, item in enumerate(items)),
                key_start=key_start,
            )

        return DocumentNode(
            NodeKind.SCALAR, ts_node.start_byte, ts_node.end_byte,
            value=self._literal(ts_node, source), key_start=key_start,
        )

    @staticmethod
    def _literal(ts_node: Any, source: bytes) -> Any:
        text = _text(ts_node, source)
        try:
            return json.loads(text)
        except ValueError as exc:
            raise ParseError(f"invalid literal {text!r}: {exc}", offset=ts_node.start_byte) from exc


def _text(ts_node: Any, source: bytes) -> str:
    return source[ts_node.start_byte:ts_node.end_byte].decode("utf-8")


def _first_error(ts_node: Any) -> Any:
    """Return the first ERROR or MISSING node below *ts_node*."""
    if ts_node.is_error or ts_node.is_missing:
        return ts_node
    for child in ts_node.children:
        if child.has_error or child.is_missing:
            return _first_error(child)
    return ts_node


# ===================================================================
# YAML (PyYAML composer)
# ===================================================================

class _ByteOffsets:
    """Convert PyYAML character indices into UTF-8 byte offsets."""

    def __init__(self, text: str) -> None:
        self._table: Optional[List[int]] = None
        if not text.isascii():
            table = [0]
            total = 0
            for ch in text:
                total += len(ch.encode("utf-8", errors="surrogatepass"))
                table.append(total)
            self._table = table

    def __call__(self, index: int) -> int:
        if self._table is None:
            return index
        return self._table[min(index, len(self._table) - 1)]


class YamlDocumentParser(DocumentParser):
    """YAML parser working on the node graph produced by ``yaml.SafeLoader``.

    Mapping keys are kept as their source text (``200:`` is the key
    ``"200"``), scalars are constructed with the safe constructor, and
    aliases are shared subtrees pointing at their anchor's source range.
    """

    format = "yaml"

    def parse(self, text: str) -> DocumentNode:
        offsets = _ByteOffsets(text)
        loader = yaml.SafeLoader(text)
        try:
            node = loader.get_single_node()
            if node is None:
                raise ParseError("document is empty", offset=0)
            return self._convert(loader, node, offsets, None, {}, set())
        except yaml.MarkedYAMLError as exc:
            mark = exc.problem_mark or exc.context_mark
            message = exc.problem or exc.context or str(exc)
            raise ParseError(message, offset=offsets(mark.index) if mark else None) from exc
        except yaml.YAMLError as exc:
            raise ParseError(str(exc)) from exc
        finally:
            loader.dispose()

    def _convert(
        self,
        loader: yaml.SafeLoader,
        node: yaml.Node,
        offsets: _ByteOffsets,
        key_start: Optional[int],
        memo: Dict[int, DocumentNode],
        active: Set[int],
    ) -> DocumentNode:
        cached = memo.get(id(node))
        if cached is not None:
            return replace(cached, key_start=key_start)

        start = offsets(node.start_mark.index)
        end = offsets(node.end_mark.index)

        if isinstance(node, yaml.ScalarNode):
            value = loader.construct_object(node, deep=True)
            if not isinstance(value, _SCALAR_TYPES):
                value = node.value
            result = DocumentNode(NodeKind.SCALAR, start, end, value=value)
            memo[id(node)] = result
            return replace(result, key_start=key_start)

        if id(node) in active:
            raise ParseError("recursive alias is not supported", offset=start)
        active = active | {id(node)}

        if isinstance(node, yaml.SequenceNode):
            entries = tuple(
                (str(i), self._convert(loader, item, offsets, None, memo, active))
                for i, item in enumerate(node.value)
            )
            result = DocumentNode(NodeKind.SEQUENCE, start, end, entries=entries)
        else:
            result = DocumentNode(
                NodeKind.MAPPING, start, end,
                entries=self._mapping_entries(loader, node, offsets, memo, active),
            )
        memo[id(node)] = result
        return replace(result, key_start=key_start)

    def _mapping_entries(
        self,
        loader: yaml.SafeLoader,
        node: yaml.MappingNode,
        offsets: _ByteOffsets,
        memo: Dict[int, DocumentNode],
        active: Set[int],
    ) -> Tuple[Tuple[str, DocumentNode], ...]:
        seen: Set[str] = set()
        for key_node, _ in node.value:
            if not isinstance(key_node, yaml.ScalarNode):
                raise ParseError("only scalar mapping keys are supported", offset=offsets(key_node.start_mark.index))
            if key_node.tag == _YAML_MERGE_TAG:
                continue
            if key_node.value in seen:
                raise ParseError(
                    f"duplicate key {key_node.value!r}", offset=offsets(key_node.start_mark.index)
                )
            seen.add(key_node.value)

        # merged (<<) pairs come first, explicit keys override them
        loader.flatten_mapping(node)
        pairs: Dict[str, Tuple[yaml.Node, yaml.Node]] = {}
        for key_node, value_node in node.value:
            pairs[key_node.value] = (key_node, value_node)

        return tuple(
            (key, self._convert(loader, value_node, offsets, offsets(key_node.start_mark.index), memo, active))
            for key, (key_node, value_node) in pairs.items()
        )


# ===================================================================
# Entry points
# ===================================================================

def make_parser(fmt: str) -> DocumentParser:
    if fmt == "yaml":
        return YamlDocumentParser()
    if fmt == "json":
        return JsonDocumentParser()
    raise ValueError(f"Unsupported document format: {fmt}")


def parse(text: str, fmt: str) -> DocumentNode:
    """Parse *text* as ``"json"`` or ``"yaml"``."""
    return make_parser(fmt).parse(text)
