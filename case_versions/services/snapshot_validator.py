import math
import re
from typing import Any, Dict, List, Optional, Sequence

from case_versions.core.config import settings
from case_versions.utils.tree import render_path

MEDIA_REF_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_./:\-]{0,255}$")


class SnapshotValidator:
    """Structural contract every committed snapshot must satisfy.

    Field-level content rules belong to the content store; this only checks
    shape: required top-level sections, JSON-only values, bounded nesting and
    well-formed media references (opaque ids, never inline binary).
    """

    def __init__(
        self,
        required_sections: Optional[Sequence[str]] = None,
        media_reference_keys: Optional[Sequence[str]] = None,
        max_depth: Optional[int] = None,
    ):
        self.required_sections = list(required_sections if required_sections is not None else settings.required_sections)
        self.media_reference_keys = set(media_reference_keys if media_reference_keys is not None else settings.media_reference_keys)
        self.max_depth = max_depth if max_depth is not None else settings.diff_max_depth

    def validate(self, snapshot: Any) -> List[Dict[str, str]]:
        if not isinstance(snapshot, dict):
            return [{"path": "", "message": "snapshot must be a mapping of sections"}]

        errors: List[Dict[str, str]] = []
        for section in self.required_sections:
            if section not in snapshot:
                errors.append({"path": section, "message": "required section is missing"})
        self._check(snapshot, (), 0, errors)
        return errors

    def _check(self, value: Any, path: tuple, depth: int, errors: List[Dict[str, str]]) -> None:
        if depth > self.max_depth:
            errors.append({"path": render_path(path), "message": f"nesting exceeds {self.max_depth} levels"})
            return

        if isinstance(value, dict):
            for key, child in value.items():
                if not isinstance(key, str):
                    errors.append({"path": render_path(path), "message": f"key {key!r} is not a string"})
                    continue
                if key in self.media_reference_keys:
                    self._check_media_ref(child, path + (key,), errors)
                    continue
                self._check(child, path + (key,), depth + 1, errors)
        elif isinstance(value, list):
            for index, child in enumerate(value):
                self._check(child, path + (index,), depth + 1, errors)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            errors.append({"path": render_path(path), "message": "raw binary is not allowed; store a media reference"})
        elif isinstance(value, float):
            if not math.isfinite(value):
                errors.append({"path": render_path(path), "message": "non-finite number"})
        elif value is not None and not isinstance(value, (str, int, bool)):
            errors.append({"path": render_path(path), "message": f"unsupported value type {type(value).__name__}"})

    def _check_media_ref(self, value: Any, path: tuple, errors: List[Dict[str, str]]) -> None:
        if value is None:
            return
        if not isinstance(value, str) or value.startswith("data:") or not MEDIA_REF_PATTERN.match(value):
            errors.append({"path": render_path(path), "message": "malformed media reference"})


snapshot_validator = SnapshotValidator()
