"""Interface shared by comment stores."""

from datetime import datetime
from typing import Optional, Protocol

from sync_comments.models import Comment


class CommentStore(Protocol):
    def replace_all(self, resource_id: str, comments: list[Comment]) -> None:
        """Atomically replace every stored comment for resource_id.

        Raises:
            PersistenceFailed: The write failed and prior rows are kept.
        """
        ...

    def query_newest(self, resource_id: str, limit: Optional[int]) -> list[Comment]:
        """Return up to limit comments with non-empty text, newest first.

        A limit of None returns every stored comment.
        """
        ...

    def query_latest_timestamp(self, resource_id: str) -> Optional[datetime]:
        """Return the newest stored published_at, or None when nothing is stored."""
        ...
