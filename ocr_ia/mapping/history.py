"""
Mapping Learning History

Records whether suggested values were accepted or replaced, so that later
mappings of the same field can re-apply values users confirmed. The history
is in memory and capped; persistence is left to the caller through
export/import (JSON-serializable records).
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from loguru import logger

from ..confidence import clamp, mean


MAX_HISTORY = 1000


@dataclass
class MappingFeedback:
    """One user decision about a suggestion."""
    form_id: str
    field_id: str
    suggested_value: str
    actual_value: str
    accepted: bool
    confidence: float
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            'form_id': self.form_id,
            'field_id': self.field_id,
            'suggested_value': self.suggested_value,
            'actual_value': self.actual_value,
            'accepted': self.accepted,
            'confidence': self.confidence,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'MappingFeedback':
        timestamp = data.get('timestamp')
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            form_id=str(data['form_id']),
            field_id=str(data['field_id']),
            suggested_value=str(data.get('suggested_value', '')),
            actual_value=str(data.get('actual_value', '')),
            accepted=bool(data.get('accepted', False)),
            confidence=clamp(float(data.get('confidence', 0.0))),
            timestamp=timestamp or datetime.now(),
        )


def word_similarity(first: str, second: str) -> float:
    """Jaccard overlap of the lowercase word sets of two texts."""
    words1 = set(first.lower().split())
    words2 = set(second.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


class MappingHistory:
    """
    Bounded feedback log; the oldest entries are evicted first.
    """

    def __init__(self, max_entries: int = MAX_HISTORY):
        self.max_entries = max_entries
        self._entries: deque[MappingFeedback] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        form_id: str,
        field_id: str,
        suggested_value: str,
        actual_value: str,
        accepted: bool,
        confidence: float,
    ) -> MappingFeedback:
        entry = MappingFeedback(
            form_id=form_id,
            field_id=field_id,
            suggested_value=suggested_value,
            actual_value=actual_value,
            accepted=accepted,
            confidence=clamp(confidence),
        )
        self._entries.append(entry)
        logger.debug(
            f"Feedback {'accepted' if accepted else 'rejected'} - {field_id}: "
            f"{suggested_value!r} -> {actual_value!r}"
        )
        return entry

    def entries(self, field_id: Optional[str] = None) -> list[MappingFeedback]:
        if field_id is None:
            return list(self._entries)
        return [e for e in self._entries if e.field_id == field_id]

    def acceptance_rate(self, field_id: str) -> float:
        entries = self.entries(field_id)
        if not entries:
            return 0.0
        return sum(1 for e in entries if e.accepted) / len(entries)

    def clear(self) -> None:
        self._entries.clear()

    def export(self) -> list[dict[str, Any]]:
        """History as JSON-serializable records, oldest first."""
        return [e.to_dict() for e in self._entries]

    def import_entries(self, records: Iterable[Any]) -> int:
        """
        Replace the history with exported records.

        Accepts MappingFeedback objects or dicts produced by export().
        Only the newest ``max_entries`` are kept.
        """
        entries = [r if isinstance(r, MappingFeedback) else MappingFeedback.from_dict(r) for r in records]
        self._entries = deque(entries, maxlen=self.max_entries)
        logger.info(f"Imported {len(entries)} learning history entries")
        return len(self._entries)

    def statistics(self) -> dict[str, Any]:
        total = len(self._entries)
        accepted = sum(1 for e in self._entries if e.accepted)

        per_field: dict[str, dict[str, int]] = {}
        for entry in self._entries:
            stats = per_field.setdefault(entry.field_id, {'accepted': 0, 'total': 0})
            stats['total'] += 1
            if entry.accepted:
                stats['accepted'] += 1

        top_fields = sorted(
            (
                {
                    'field_id': field_id,
                    'acceptance_rate': stats['accepted'] / stats['total'],
                    'count': stats['total'],
                }
                for field_id, stats in per_field.items()
            ),
            key=lambda s: s['acceptance_rate'],
            reverse=True,
        )[:10]

        return {
            'total_mappings': total,
            'acceptance_rate': accepted / total if total else 0.0,
            'top_performing_fields': top_fields,
            'average_confidence': mean(e.confidence for e in self._entries),
        }
