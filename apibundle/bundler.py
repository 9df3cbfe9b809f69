"""Reference bundler for multi-file OpenAPI documents.

Walks the root document depth-first and pulls every cross-file ``$ref``
target into the root, producing one self-contained document plus a
:class:`~apibundle.provenance.ProvenanceTree` recording where each relocated
node came from.

Relocation rules, in order:

1. A target whose own pointer starts with ``components/<kind>/<name>`` goes to
   ``components/<kind>/<mangled file>-<name>``.
2. Otherwise the key holding the ``$ref`` (or its parent key) picks a
   container from the version's routing table, and the node goes there under
   the mangled ``$ref`` text.
3. Otherwise the target is inlined at the reference site.

References into the root document itself stay references.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote

from .errors import (
    CircularReferenceError,
    DestinationCollisionError,
    ReferenceResolutionError,
    UnsupportedVersionError,
)
from .parser import NodeKind
from .pointer import is_remote, join_pointer, parse_pointer, split_ref
from .provenance import ProvenanceBuilder, ProvenanceRecord, ProvenanceTree
from .session import DocumentSession, ParsedDocument

logger = logging.getLogger(__name__)

_OPENAPI_3_0 = re.compile(r"^3\.0\.\d(-.+)?$")
_MANGLE = re.compile(r"[~/.]")

Segments = Tuple[str, ...]
RefKey = Tuple[Path, Segments]


# ===================================================================
# Schema versions and their routing tables
# ===================================================================

class SchemaVersion(Enum):
    V2 = "v2"
    V3 = "v3"

    @property
    def destinations(self) -> Dict[str, Segments]:
        return _DESTINATIONS[self]

    def destination_for(self, parent_key: Optional[str], grandparent_key: Optional[str]) -> Optional[Segments]:
        """Container for a reference held under *parent_key* / *grandparent_key*."""
        table = self.destinations
        if parent_key in table:
            return table[parent_key]
        if grandparent_key in table:
            return table[grandparent_key]
        return None


_DESTINATIONS: Dict[SchemaVersion, Dict[str, Segments]] = {
    SchemaVersion.V2: {
        "parameters": ("parameters",),
        "schema": ("definitions",),
        "responses": ("responses",),
    },
    SchemaVersion.V3: {
        "parameters": ("components", "parameters"),
        "schema": ("components", "schemas"),
        "responses": ("components", "responses"),
        "examples": ("components", "examples"),
        "requestBody": ("components", "requestBodies"),
        "callbacks": ("components", "callbacks"),
        "headers": ("components", "headers"),
        "links": ("components", "links"),
    },
}


def detect_version(document: Any) -> Optional[SchemaVersion]:
    """``V2`` for ``swagger: "2.0"``, ``V3`` for ``openapi: 3.0.x``, else ``None``."""
    if not isinstance(document, dict):
        return None
    swagger = document.get("swagger")
    if swagger is not None and not isinstance(swagger, bool) and str(swagger) == "2.0":
        return SchemaVersion.V2
    openapi = document.get("openapi")
    if isinstance(openapi, str) and _OPENAPI_3_0.match(openapi):
        return SchemaVersion.V3
    return None


def mangle(value: str) -> str:
    """Make *value* usable as a single, readable destination key."""
    return _MANGLE.sub("-", value).replace("#", "")


def is_ref(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("$ref"), str)


# ===================================================================
# Result
# ===================================================================

@dataclass(frozen=True)
class BundleResult:
    root_file: Path
    version: Optional[SchemaVersion]
    document: Any
    provenance: ProvenanceTree

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.document, indent=indent, ensure_ascii=False)


# ===================================================================
# Bundler
# ===================================================================

class Bundler:
    """Bundles one root document using documents loaded through *session*."""

    def __init__(self, session: DocumentSession):
        self.session = session

    def bundle(self, root_file: Path) -> BundleResult:
        root = self.session.load(root_file)
        builder = _BundleBuilder(self.session, root)
        return builder.build()


class _BundleBuilder:
    """Owns all intermediate state of a single bundling pass."""

    def __init__(self, session: DocumentSession, root: ParsedDocument):
        self.session = session
        self.root = root
        self.version = detect_version(root.value)
        self.root_dir = root.path.parent
        self.provenance = ProvenanceBuilder()
        # (file, pointer) -> destination path for every relocated target
        self.destinations: Dict[RefKey, Segments] = {}
        # destination path -> (origin, bundled value), in reservation order
        self.placements: Dict[Segments, Tuple[ProvenanceRecord, Any]] = {}
        self.inline_stack: List[RefKey] = []

    def build(self) -> BundleResult:
        logger.debug("Bundling %s (version %s)", self.root.path, self.version)
        document = self._transform(self.root.value, self.root.path, ())
        for destination, (_, value) in self.placements.items():
            _insert(document, destination, value)
        return BundleResult(
            root_file=self.root.path,
            version=self.version,
            document=document,
            provenance=self.provenance.freeze(),
        )

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _transform(self, value: Any, file: Path, path: Segments) -> Any:
        if is_ref(value):
            return self._resolve(value, file, path)
        if isinstance(value, dict):
            return {key: self._transform(child, file, path + (key,)) for key, child in value.items()}
        if isinstance(value, list):
            return [self._transform(child, file, path + (str(i),)) for i, child in enumerate(value)]
        return value

    def _resolve(self, ref_obj: Dict[str, Any], file: Path, path: Segments) -> Any:
        ref = ref_obj["$ref"]
        file_part, fragment = split_ref(ref)
        if is_remote(file_part):
            raise ReferenceResolutionError(ref, file, reason="only local file references are supported")
        try:
            segments = tuple(parse_pointer(fragment))
        except ValueError as exc:
            raise ReferenceResolutionError(ref, file, reason=str(exc)) from exc

        target_file = (file.parent / unquote(file_part)).resolve() if file_part else file
        if target_file == self.root.path:
            self._target_node(self.root, segments, ref, file)
            if file == self.root.path and not file_part:
                return dict(ref_obj)
            return _local_ref(ref_obj, segments)
        return self._relocate(ref_obj, target_file, segments, file, path)

    def _relocate(
        self,
        ref_obj: Dict[str, Any],
        target_file: Path,
        segments: Segments,
        file: Path,
        path: Segments,
    ) -> Any:
        ref = ref_obj["$ref"]
        key: RefKey = (target_file, segments)
        if key in self.destinations:
            return _local_ref(ref_obj, self.destinations[key])

        if self.version is None:
            raise UnsupportedVersionError(self.root.path)

        try:
            document = self.session.load(target_file)
        except FileNotFoundError as exc:
            raise ReferenceResolutionError(ref, file, reason=f"file not found: {target_file}") from exc
        target = self._target_node(document, segments, ref, file).to_value()
        origin = ProvenanceRecord(target_file, join_pointer(segments, fragment=True))

        destination = self._destination(ref, target_file, segments, path)
        if destination is None:
            return self._inline(key, target, origin, ref, file, path)

        fresh = self._reserve(destination, origin)
        self.destinations[key] = destination
        if fresh:
            logger.debug("Relocating %s to %s", ref, join_pointer(destination, fragment=True))
            self.provenance.insert(destination, origin)
            self.placements[destination] = (origin, None)
            # a placement ends any inline expansion in progress
            inline_stack, self.inline_stack = self.inline_stack, []
            try:
                value = self._transform(target, target_file, destination)
            finally:
                self.inline_stack = inline_stack
            self.placements[destination] = (origin, value)
        return _local_ref(ref_obj, destination)

    def _inline(
        self,
        key: RefKey,
        target: Any,
        origin: ProvenanceRecord,
        ref: str,
        file: Path,
        path: Segments,
    ) -> Any:
        if key in self.inline_stack:
            raise CircularReferenceError(ref, file)
        logger.debug("Inlining %s at %s", ref, join_pointer(path, fragment=True))
        self.provenance.insert(path, origin)
        self.inline_stack.append(key)
        try:
            return self._transform(target, origin.file, path)
        finally:
            self.inline_stack.pop()

    # ------------------------------------------------------------------
    # Destinations
    # ------------------------------------------------------------------

    def _destination(self, ref: str, target_file: Path, segments: Segments, path: Segments) -> Optional[Segments]:
        if len(segments) >= 3 and segments[0] == "components":
            relative = Path(os.path.relpath(target_file, self.root_dir)).as_posix()
            return ("components", segments[1], f"{mangle(relative)}-{segments[2]}") + segments[3:]

        parent_key = path[-1] if len(path) >= 1 else None
        grandparent_key = path[-2] if len(path) >= 2 else None
        container = self.version.destination_for(parent_key, grandparent_key)
        if container is None:
            return None
        return container + (mangle(ref),)

    def _reserve(self, destination: Segments, origin: ProvenanceRecord) -> bool:
        """Claim *destination* for *origin*.

        Returns ``False`` when the destination already holds exactly this
        origin, raises :class:`DestinationCollisionError` when it holds
        anything else.
        """
        node = self.root.root
        for depth, segment in enumerate(destination):
            child = node.child(segment)
            if child is None:
                break
            if depth == len(destination) - 1 or child.kind is not NodeKind.MAPPING:
                raise DestinationCollisionError(destination)
            node = child

        for placed, (placed_origin, _) in self.placements.items():
            if destination[:len(placed)] == placed:
                if placed_origin.extend(destination[len(placed):]) == origin:
                    return False
                raise DestinationCollisionError(destination)
            if placed[:len(destination)] == destination:
                raise DestinationCollisionError(destination)
        return True

    @staticmethod
    def _target_node(document: ParsedDocument, segments: Segments, ref: str, file: Path):
        node = document.root.find_segments(segments)
        if node is None:
            raise ReferenceResolutionError(
                ref, file, reason=f"{join_pointer(segments, fragment=True)} not found in {document.path}"
            )
        return node


def _local_ref(ref_obj: Dict[str, Any], segments: Sequence[str]) -> Dict[str, Any]:
    rewritten = dict(ref_obj)
    rewritten["$ref"] = join_pointer(segments, fragment=True)
    return rewritten


def _insert(document: Any, path: Segments, value: Any) -> None:
    current = document
    for segment in path[:-1]:
        if segment not in current:
            current[segment] = {}
        current = current[segment]
        if not isinstance(current, dict):
            raise DestinationCollisionError(path)
    if path[-1] in current:
        raise DestinationCollisionError(path)
    current[path[-1]] = value
