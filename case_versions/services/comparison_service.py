import diff_match_patch as dmp_module
from typing import List, Optional

from case_versions.schemas.comparison import ComparisonStats, DiffEntryResponse, TextSegment
from case_versions.services.diff_engine import ChangeType, DiffEntry, top_level_paths


class ComparisonService:
    """Presentation helpers layered on top of the structural diff"""

    def __init__(self):
        self.dmp = dmp_module.diff_match_patch()

    def text_segments(self, old_text: str, new_text: str) -> List[TextSegment]:
        """Word-level segments for a modified string leaf"""
        diff = self.dmp.diff_main(old_text or '', new_text or '')
        self.dmp.diff_cleanupSemantic(diff)
        result: List[TextSegment] = []
        for op, text in diff:
            if not text:
                continue
            segment_type = {
                0: 'unchanged',
                -1: 'deleted',
                1: 'added'
            }[op]
            result.append(TextSegment(type=segment_type, text=text))
        return result

    def describe(self, entries: List[DiffEntry]) -> List[DiffEntryResponse]:
        described = []
        for entry in entries:
            segments: Optional[List[TextSegment]] = None
            if (
                entry.change_type == ChangeType.MODIFIED
                and isinstance(entry.old_value, str)
                and isinstance(entry.new_value, str)
            ):
                segments = self.text_segments(entry.old_value, entry.new_value)
            described.append(DiffEntryResponse(**entry.to_dict(), text_segments=segments))
        return described

    def stats(self, entries: List[DiffEntry], snapshot_a: dict, snapshot_b: dict) -> ComparisonStats:
        counts = {change_type: 0 for change_type in ChangeType}
        for entry in entries:
            counts[entry.change_type] += 1

        sections = set(snapshot_a) | set(snapshot_b)
        touched = len(top_level_paths(entries))
        percentage = round(100.0 * touched / len(sections), 1) if sections else 0.0

        return ComparisonStats(
            total_changes=len(entries),
            added=counts[ChangeType.ADDED],
            removed=counts[ChangeType.REMOVED],
            modified=counts[ChangeType.MODIFIED],
            change_percentage=percentage,
        )


# Create a singleton instance
comparison_service = ComparisonService()
