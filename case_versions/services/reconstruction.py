"""
Materialization of stored versions.

Compressed versions hold a positional delta against `delta_parent`, the next
newer surviving version. Following `delta_parent` links always ends at a
version that still holds a full snapshot: its `baseline_ref`. Replaying the
deltas from that baseline back down the chain rebuilds the version exactly,
mapping key order included.
"""
import copy
from typing import Any, Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from case_versions.core.exceptions import RetentionViolation
from case_versions.crud.version import version_crud
from case_versions.models.version import EntityVersion
from case_versions.services.diff_engine import DiffEngine

# Delta entry restoring the key order of a mapping; applied after all value changes
REORDER = "reorder"


def apply_delta(base: Any, delta: List[Dict[str, Any]]) -> Any:
    """Apply a stored positional delta to a copy of `base` and return the result.

    Removals are applied last-to-first so trailing sequence removals do not
    shift each other; additions and modifications follow in stored order, and
    key-order entries run last.
    """
    document = copy.deepcopy(base)
    removals = [entry for entry in delta if entry["change_type"] == "removed"]
    for entry in reversed(removals):
        parent, last = _walk(document, entry["segments"])
        del parent[last]

    for entry in delta:
        change_type = entry["change_type"]
        if change_type in ("removed", REORDER):
            continue
        segments = entry["segments"]
        if not segments:
            document = copy.deepcopy(entry["new_value"])
            continue
        parent, last = _walk(document, segments)
        value = copy.deepcopy(entry["new_value"])
        if change_type == "added" and isinstance(parent, list):
            if last != len(parent):
                raise ValueError(f"Delta appends at index {last} but sequence has {len(parent)} items")
            parent.append(value)
        else:
            parent[last] = value

    for entry in delta:
        if entry["change_type"] != REORDER:
            continue
        mapping = _resolve(document, entry["segments"])
        reordered = {key: mapping[key] for key in entry["keys"]}
        mapping.clear()
        mapping.update(reordered)
    return document


def _walk(document: Any, segments: List[Any]):
    node = document
    for segment in segments[:-1]:
        node = node[segment]
    return node, segments[-1]


def _resolve(document: Any, segments: List[Any]) -> Any:
    node = document
    for segment in segments:
        node = node[segment]
    return node


def key_order_entries(rebuilt: Any, target: Any, segments: Tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
    """Entries that put every mapping of `rebuilt` back in `target`'s key order"""
    entries: List[Dict[str, Any]] = []
    if isinstance(target, dict) and isinstance(rebuilt, dict):
        if list(rebuilt) != list(target):
            entries.append({"segments": list(segments), "change_type": REORDER, "keys": list(target)})
        for key, child in target.items():
            if key in rebuilt:
                entries.extend(key_order_entries(rebuilt[key], child, segments + (key,)))
    elif isinstance(target, list) and isinstance(rebuilt, list):
        for index, (rebuilt_child, target_child) in enumerate(zip(rebuilt, target)):
            entries.extend(key_order_entries(rebuilt_child, target_child, segments + (index,)))
    return entries


def build_delta(engine: DiffEngine, base: Any, target: Any) -> List[Dict[str, Any]]:
    """Storable delta that rebuilds `target` from `base`"""
    delta = [entry.to_delta() for entry in engine.diff(base, target, match_identity=False)]
    delta.extend(key_order_entries(apply_delta(base, delta), target))
    return delta


class Reconstructor:
    """Loads versions and rebuilds their full snapshot"""

    async def materialize(self, db: AsyncSession, version: EntityVersion) -> Dict[str, Any]:
        if version.is_full:
            return copy.deepcopy(version.snapshot)

        chain = await self.load_chain(db, version)
        baseline = chain[-1]
        document = copy.deepcopy(baseline.snapshot)
        # chain is [version, parent, ..., baseline]; replay from the baseline downwards
        for link in reversed(chain[:-1]):
            document = apply_delta(document, link.delta)
        return document

    async def load_chain(self, db: AsyncSession, version: EntityVersion) -> List[EntityVersion]:
        """Versions from `version` up to and including its full-snapshot baseline"""
        chain = [version]
        current = version
        while not current.is_full:
            if current.delta_parent is None or current.delta is None:
                raise RetentionViolation(
                    f"Version {current.version_number} of {current.entity_id} has no delta to replay"
                )
            parent = await version_crud.get_version(
                db, entity_id=current.entity_id, version_number=current.delta_parent,
                raise_if_not_found=False
            )
            if parent is None:
                raise RetentionViolation(
                    f"Delta chain of {version.entity_id} v{version.version_number} is broken "
                    f"at v{current.delta_parent}"
                )
            chain.append(parent)
            current = parent

        if version.baseline_ref is not None and current.version_number != version.baseline_ref:
            raise RetentionViolation(
                f"Version {version.version_number} references baseline {version.baseline_ref} "
                f"but its chain ends at {current.version_number}"
            )
        return chain

    async def materialize_number(
        self, db: AsyncSession, entity_id: str, version_number: int
    ) -> Dict[str, Any]:
        version = await version_crud.get_version(db, entity_id=entity_id, version_number=version_number)
        return await self.materialize(db, version)


reconstructor = Reconstructor()
