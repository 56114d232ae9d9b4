import logging
from collections import deque
from typing import Deque, List, Optional

from app.domain import services
from app.domain.models import DetectionSet, EncodedImage, HistoryEntry, SessionStats

log = logging.getLogger(__name__)


class SessionHistory:
    """
    Most-recent-first record of completed detection runs for one session.
    Entries are immutable; the only removal is the bulk `clear()`.
    """

    def __init__(self):
        self._entries: Deque[HistoryEntry] = deque()

    def commit(self, detections: DetectionSet, image: EncodedImage) -> HistoryEntry:
        entry = HistoryEntry(detections=detections, image=image)
        self._entries.appendleft(entry)
        log.info("Committed history entry %s (%d plates)", entry.entry_id, entry.plate_count)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def latest(self) -> Optional[HistoryEntry]:
        return self._entries[0] if self._entries else None

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.entry_id == entry_id:
                return entry
        return None

    def stats(self) -> SessionStats:
        return services.summarize_session(self._entries)
