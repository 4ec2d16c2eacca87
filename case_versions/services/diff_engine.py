"""
Structural diff between two snapshots.

The engine is pure: it reads two documents and returns an ordered list of
path-level changes. It never touches storage and never retries.

Rules
-----
* mappings are compared key by key; keys only in B are `added`, keys only in A
  are `removed`, and keys in both recurse when both sides are the same
  composite kind, otherwise the pair is reported `modified`.
* sequences whose elements all carry a unique identity field are matched by
  identity, so reordering produces no noise; other sequences are compared by
  index and the trailing length difference is reported at the end.
* leaves are equal only when both type and value match.

Output is depth-first pre-order. Mapping siblings follow A's key order, then
B-only keys in B's order. `diff(a, b)` and `diff(b, a)` mirror each other.
"""
import enum
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from case_versions.core.config import settings
from case_versions.core.deadline import Deadline
from case_versions.utils.tree import (
    LEAF,
    MAPPING,
    IdentityRef,
    MappingNode,
    Node,
    Path,
    SequenceNode,
    render_path,
    to_tree,
)


class ChangeType(str, enum.Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


_MIRROR = {
    ChangeType.ADDED: ChangeType.REMOVED,
    ChangeType.REMOVED: ChangeType.ADDED,
    ChangeType.MODIFIED: ChangeType.MODIFIED,
}


@dataclass(frozen=True)
class DiffEntry:
    segments: Path
    change_type: ChangeType
    old_value: Any = None
    new_value: Any = None

    @property
    def path(self) -> str:
        return render_path(self.segments)

    def mirrored(self) -> "DiffEntry":
        return DiffEntry(self.segments, _MIRROR[self.change_type], self.new_value, self.old_value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "change_type": self.change_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }

    def to_delta(self) -> Dict[str, Any]:
        """Storable form; only positional diffs can be stored"""
        for segment in self.segments:
            if isinstance(segment, IdentityRef):
                raise ValueError(f"Identity-matched path {self.path} cannot be stored as a delta")
        return {
            "segments": list(self.segments),
            "change_type": self.change_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


class DiffEngine:
    def __init__(
        self,
        max_depth: Optional[int] = None,
        identity_fields: Optional[Sequence[str]] = None,
    ):
        self.max_depth = max_depth if max_depth is not None else settings.diff_max_depth
        self.identity_fields = tuple(identity_fields if identity_fields is not None else settings.identity_fields)

    def diff(
        self,
        snapshot_a: Any,
        snapshot_b: Any,
        *,
        deadline: Optional[Deadline] = None,
        match_identity: bool = True,
    ) -> List[DiffEntry]:
        tree_a = to_tree(snapshot_a, self.max_depth)
        tree_b = to_tree(snapshot_b, self.max_depth)
        out: List[DiffEntry] = []
        self._compare(tree_a, tree_b, (), out, deadline, match_identity)
        return out

    def _compare(
        self,
        a: Node,
        b: Node,
        path: Path,
        out: List[DiffEntry],
        deadline: Optional[Deadline],
        match_identity: bool,
    ) -> None:
        if deadline is not None:
            deadline.check()

        if a.kind != b.kind or a.kind == LEAF:
            if a.kind == LEAF and b.kind == LEAF and a.same_as(b):
                return
            out.append(DiffEntry(path, ChangeType.MODIFIED, a.to_value(), b.to_value()))
            return

        if a.kind == MAPPING:
            self._compare_mappings(a, b, path, out, deadline, match_identity)
            return

        identity_field = self._identity_field(a, b) if match_identity else None
        if identity_field is not None:
            self._compare_by_identity(a, b, identity_field, path, out, deadline, match_identity)
        else:
            self._compare_by_position(a, b, path, out, deadline, match_identity)

    def _compare_mappings(self, a: MappingNode, b: MappingNode, path, out, deadline, match_identity):
        b_children = b.as_dict()
        a_keys = set()
        for key, a_child in a.entries:
            a_keys.add(key)
            if key not in b_children:
                out.append(DiffEntry(path + (key,), ChangeType.REMOVED, a_child.to_value(), None))
            else:
                self._compare(a_child, b_children[key], path + (key,), out, deadline, match_identity)
        for key, b_child in b.entries:
            if key not in a_keys:
                out.append(DiffEntry(path + (key,), ChangeType.ADDED, None, b_child.to_value()))

    def _compare_by_position(self, a: SequenceNode, b: SequenceNode, path, out, deadline, match_identity):
        shared = min(len(a.items), len(b.items))
        for index in range(shared):
            self._compare(a.items[index], b.items[index], path + (index,), out, deadline, match_identity)
        for index in range(shared, len(a.items)):
            out.append(DiffEntry(path + (index,), ChangeType.REMOVED, a.items[index].to_value(), None))
        for index in range(shared, len(b.items)):
            out.append(DiffEntry(path + (index,), ChangeType.ADDED, None, b.items[index].to_value()))

    def _compare_by_identity(self, a: SequenceNode, b: SequenceNode, field, path, out, deadline, match_identity):
        b_by_id = {_identity_of(item, field): item for item in b.items}
        a_ids = set()
        for item in a.items:
            key = _identity_of(item, field)
            a_ids.add(key)
            segment = path + (IdentityRef(field, key),)
            if key not in b_by_id:
                out.append(DiffEntry(segment, ChangeType.REMOVED, item.to_value(), None))
            else:
                self._compare(item, b_by_id[key], segment, out, deadline, match_identity)
        for item in b.items:
            key = _identity_of(item, field)
            if key not in a_ids:
                out.append(DiffEntry(path + (IdentityRef(field, key),), ChangeType.ADDED, None, item.to_value()))

    def _identity_field(self, a: SequenceNode, b: SequenceNode) -> Optional[str]:
        """First configured identity field that is present and unique on both sides"""
        if not a.items and not b.items:
            return None
        for field in self.identity_fields:
            if _has_unique_identity(a.items, field) and _has_unique_identity(b.items, field):
                return field
        return None


def _identity_of(item: Node, field: str):
    return item.as_dict()[field].to_value()


def _has_unique_identity(items: Iterable[Node], field: str) -> bool:
    seen = set()
    for item in items:
        if item.kind != MAPPING:
            return False
        child = item.as_dict().get(field)
        if child is None or child.kind != LEAF:
            return False
        value = child.to_value()
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            return False
        if value in seen:
            return False
        seen.add(value)
    return True


def top_level_paths(entries: Iterable[DiffEntry]) -> List[str]:
    """Reduce a diff to the ordered, distinct top-level paths it touches"""
    summary: List[str] = []
    for entry in entries:
        if not entry.segments:
            continue
        head = entry.segments[0]
        name = head.render() if isinstance(head, IdentityRef) else str(head)
        if name not in summary:
            summary.append(name)
    return summary


# Create a singleton instance
diff_engine = DiffEngine()
