from collections.abc import Iterable, Iterator
from dataclasses import replace

from mneme.domain.constants import HISTORY_LIMIT
from mneme.domain.schedule.models import HistoryItem


class HistoryLog:
    """Append-only review log, capped at ``limit`` entries (oldest dropped first)."""

    def __init__(self, entries: Iterable[HistoryItem] = (), limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._entries: list[HistoryItem] = list(entries)[-limit:]

    def append(self, item: HistoryItem) -> None:
        self._entries.append(item)
        if len(self._entries) > self.limit:
            del self._entries[: len(self._entries) - self.limit]

    def for_item(self, item_id: str) -> list[HistoryItem]:
        """Entries for one item, newest first."""
        return [e for e in reversed(self._entries) if e.item_id == item_id]

    def rename(self, old_id: str, new_id: str) -> None:
        self._entries = [
            replace(e, item_id=new_id) if e.item_id == old_id else e for e in self._entries
        ]

    def entries(self) -> list[HistoryItem]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryItem]:
        return iter(self.entries())
