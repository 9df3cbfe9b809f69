"""Provenance tree: where each relocated node of a bundled document came from."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ProvenanceMissing
from .pointer import join_pointer, parse_pointer


@dataclass(frozen=True)
class ProvenanceRecord:
    """Origin of a relocated node: the source file and its pointer there."""

    file: Path
    pointer: str

    def extend(self, suffix: Sequence[str]) -> "ProvenanceRecord":
        if not suffix:
            return self
        return ProvenanceRecord(self.file, self.pointer + join_pointer(suffix))

    def to_dict(self) -> Dict[str, str]:
        return {"file": str(self.file), "pointer": self.pointer}


@dataclass(frozen=True)
class ProvenanceNode:
    record: Optional[ProvenanceRecord]
    children: Mapping[str, "ProvenanceNode"]


class ProvenanceTree:
    """Immutable tree shaped like the relocated parts of a bundled document.

    Each node is either a routing node or carries a :class:`ProvenanceRecord`.
    """

    def __init__(self, root: ProvenanceNode):
        self._root = root

    @classmethod
    def empty(cls) -> "ProvenanceTree":
        return cls(ProvenanceNode(None, MappingProxyType({})))

    @property
    def root(self) -> ProvenanceNode:
        return self._root

    def resolve(self, pointer: str) -> ProvenanceRecord:
        """Map a pointer into the bundled document to its original location.

        The deepest record on the pointer's path wins; the unmatched rest of
        the pointer is appended to that record's pointer.
        """
        try:
            path = parse_pointer(pointer)
        except ValueError as exc:
            raise ProvenanceMissing(pointer) from exc
        return self.resolve_segments(path, pointer)

    def resolve_segments(self, path: Sequence[str], pointer: Optional[str] = None) -> ProvenanceRecord:
        current = self._root
        best: Optional[ProvenanceRecord] = current.record
        best_depth = 0
        depth = 0
        while depth < len(path) and path[depth] in current.children:
            current = current.children[path[depth]]
            depth += 1
            if current.record is not None:
                best, best_depth = current.record, depth

        if best is None:
            raise ProvenanceMissing(pointer if pointer is not None else join_pointer(path, fragment=True))
        return best.extend(path[best_depth:])

    def records(self) -> Iterator[Tuple[Tuple[str, ...], ProvenanceRecord]]:
        """Yield ``(destination path, record)`` in insertion order."""
        stack: List[Tuple[Tuple[str, ...], ProvenanceNode]] = [((), self._root)]
        while stack:
            path, node = stack.pop()
            if node.record is not None:
                yield path, node.record
            for key in reversed(list(node.children)):
                stack.append((path + (key,), node.children[key]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            join_pointer(path, fragment=True): record.to_dict()
            for path, record in self.records()
        }

    def __len__(self) -> int:
        return sum(1 for _ in self.records())


class _BuilderNode:
    __slots__ = ("record", "children")

    def __init__(self) -> None:
        self.record: Optional[ProvenanceRecord] = None
        self.children: Dict[str, _BuilderNode] = {}


class ProvenanceBuilder:
    """Mutable counterpart of :class:`ProvenanceTree` used during bundling."""

    def __init__(self) -> None:
        self._root = _BuilderNode()

    def insert(self, path: Sequence[str], record: ProvenanceRecord) -> None:
        current = self._root
        for segment in path:
            current = current.children.setdefault(segment, _BuilderNode())
        current.record = record

    def freeze(self) -> ProvenanceTree:
        return ProvenanceTree(self._freeze(self._root))

    def _freeze(self, node: _BuilderNode) -> ProvenanceNode:
        children = {key: self._freeze(child) for key, child in node.children.items()}
        return ProvenanceNode(node.record, MappingProxyType(children))
