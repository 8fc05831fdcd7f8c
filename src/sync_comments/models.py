"""Data models for the comment sync pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DEFAULT_AUTHOR = "Anonymous"


@dataclass
class Comment:
    """Canonical comment as stored and returned to callers."""
    resource_id: str
    text: str
    published_at: datetime
    like_count: int = 0
    author: str = DEFAULT_AUTHOR
    author_url: Optional[str] = None
    comment_id: Optional[str] = None


@dataclass
class CommentPage:
    """One page of raw items returned by a comment source."""
    items: list[dict]
    next_token: Optional[str] = None
    total_hint: Optional[int] = None


@dataclass
class SyncOptions:
    force_fresh: bool = False
    page_size: int = 50
    inter_page_delay_ms: int = 400
    continuation_token: Optional[str] = None
    # False together with force_fresh refetches everything without a cutoff
    incremental: bool = True


@dataclass
class SyncCursor:
    """Per-session pagination state. Lives only for the duration of a sync."""
    resource_id: str
    continuation_token: Optional[str] = None
    cutoff_timestamp: Optional[datetime] = None
    accumulated: list[Comment] = field(default_factory=list)
    cancelled: bool = False
    exhausted: bool = False
    total_hint: Optional[int] = None
    pages_fetched: int = 0


@dataclass
class SyncProgress:
    resource_id: str
    loaded: int
    total_hint: Optional[int]
    page: int


@dataclass
class SyncResult:
    """Outcome of one sync call."""
    comments: list[Comment]
    next_token: Optional[str] = None
    total_hint: Optional[int] = None
    from_cache: bool = False
    cancelled: bool = False
    persisted: bool = False
