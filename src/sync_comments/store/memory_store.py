"""In-process comment store, used for local runs and tests."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

from sync_comments.models import Comment


class MemoryCommentStore:
    def __init__(self):
        self._comments: dict[str, list[Comment]] = {}
        self._lock = threading.Lock()

    def replace_all(self, resource_id: str, comments: list[Comment]) -> None:
        rows = [replace(c, resource_id=resource_id) for c in comments]
        with self._lock:
            self._comments[resource_id] = rows

    def query_newest(self, resource_id: str, limit: Optional[int]) -> list[Comment]:
        with self._lock:
            rows = list(self._comments.get(resource_id, []))
        rows = [c for c in rows if c.text and c.text.strip()]
        rows.sort(key=lambda c: c.published_at, reverse=True)
        return rows[:limit]

    def query_latest_timestamp(self, resource_id: str) -> Optional[datetime]:
        with self._lock:
            rows = self._comments.get(resource_id, [])
            if not rows:
                return None
            return max(c.published_at for c in rows)
