"""
Tagged tree representation of snapshot documents.

Snapshots arrive as plain JSON-shaped Python values. They are converted once
into `MappingNode` / `SequenceNode` / `LeafNode` so the diff engine can recurse
on the node kind alone. Conversion is where nesting depth is bounded.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union
import hashlib
import json

from case_versions.core.exceptions import SnapshotDepthExceeded

MAPPING = "mapping"
SEQUENCE = "sequence"
LEAF = "leaf"


@dataclass(frozen=True)
class IdentityRef:
    """Path segment addressing a sequence element by its identity field"""
    field: str
    value: Union[str, int]

    def render(self) -> str:
        return f"[{self.field}={self.value}]"


PathSegment = Union[str, int, IdentityRef]
Path = Tuple[PathSegment, ...]


@dataclass(frozen=True, eq=False)
class LeafNode:
    value: Any
    kind: str = LEAF

    def same_as(self, other: "LeafNode") -> bool:
        # 1, 1.0 and True are different values in a stored document
        return type(self.value) is type(other.value) and self.value == other.value

    def to_value(self) -> Any:
        return self.value


@dataclass(frozen=True, eq=False)
class MappingNode:
    entries: Tuple[Tuple[str, "Node"], ...]
    kind: str = MAPPING

    def as_dict(self) -> Dict[str, "Node"]:
        return dict(self.entries)

    def to_value(self) -> Dict[str, Any]:
        return {key: node.to_value() for key, node in self.entries}


@dataclass(frozen=True, eq=False)
class SequenceNode:
    items: Tuple["Node", ...]
    kind: str = SEQUENCE

    def to_value(self) -> List[Any]:
        return [node.to_value() for node in self.items]


Node = Union[LeafNode, MappingNode, SequenceNode]


def render_path(segments: Path) -> str:
    """Render path segments as `sections[0].title` / `gallery[id=img-2].caption`"""
    out = ""
    for segment in segments:
        if isinstance(segment, IdentityRef):
            out += segment.render()
        elif isinstance(segment, int):
            out += f"[{segment}]"
        else:
            out += f".{segment}" if out else segment
    return out


def to_tree(value: Any, max_depth: int, _path: Path = (), _depth: int = 0) -> Node:
    """Convert a JSON-shaped value into a tagged tree, bounding nesting depth"""
    if _depth > max_depth:
        raise SnapshotDepthExceeded(render_path(_path), max_depth)
    if isinstance(value, dict):
        return MappingNode(tuple(
            (key, to_tree(child, max_depth, _path + (key,), _depth + 1))
            for key, child in value.items()
        ))
    if isinstance(value, (list, tuple)):
        return SequenceNode(tuple(
            to_tree(child, max_depth, _path + (index,), _depth + 1)
            for index, child in enumerate(value)
        ))
    return LeafNode(value)


def canonical_json(document: Any) -> str:
    """Compact serialization in document key order, used for byte-level equality checks"""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False)


def content_hash(document: Any) -> str:
    return hashlib.sha256(canonical_json(document).encode("utf-8")).hexdigest()
