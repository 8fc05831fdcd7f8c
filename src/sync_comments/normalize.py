"""Map raw comment-source items to canonical Comments."""

import logging
from datetime import datetime
from typing import Any, Optional

from common.datetime import parse_datetime, utc_now
from sync_comments.errors import MalformedItem
from sync_comments.models import DEFAULT_AUTHOR, Comment

logger = logging.getLogger(__name__)


def _get_value(raw: Any, key: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(key)
    return getattr(raw, key, None)


def _snippet(raw: Any) -> Any:
    """Return the comment snippet for YouTube envelopes, or the item itself."""
    thread = _get_value(raw, "snippet")
    if thread is None:
        return raw
    top_level = _get_value(thread, "topLevelComment")
    if top_level is None:
        raise MalformedItem("commentThread has no topLevelComment")
    snippet = _get_value(top_level, "snippet")
    if snippet is None:
        raise MalformedItem("topLevelComment has no snippet")
    return snippet


def _extract_text(snippet: Any) -> str:
    text = (
        _get_value(snippet, "textDisplay")
        or _get_value(snippet, "textOriginal")
        or _get_value(snippet, "text")
    )
    if text is None:
        return ""
    if not isinstance(text, str):
        raise MalformedItem(f"text is not a string: {type(text).__name__}")
    return text.strip()


def parse_like_count(value: Any) -> int:
    """Parse a like count, treating missing, invalid or negative values as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(count, 0)


def _extract_author(snippet: Any) -> str:
    author = _get_value(snippet, "authorDisplayName") or _get_value(snippet, "authorName")
    if isinstance(author, str) and author.strip():
        return author.strip()
    return DEFAULT_AUTHOR


def _extract_author_url(snippet: Any) -> Optional[str]:
    url = _get_value(snippet, "authorChannelUrl") or _get_value(snippet, "authorUrl")
    return url if isinstance(url, str) and url else None


def _extract_comment_id(raw: Any) -> Optional[str]:
    comment_id = _get_value(raw, "id")
    return comment_id if isinstance(comment_id, str) and comment_id else None


def _build_comment(raw: Any, resource_id: str, ingested_at: datetime) -> Optional[Comment]:
    snippet = _snippet(raw)
    text = _extract_text(snippet)
    if not text:
        return None

    return Comment(
        resource_id=resource_id,
        text=text,
        published_at=parse_datetime(_get_value(snippet, "publishedAt"), default=ingested_at),
        like_count=parse_like_count(_get_value(snippet, "likeCount")),
        author=_extract_author(snippet),
        author_url=_extract_author_url(snippet),
        comment_id=_extract_comment_id(raw),
    )


def normalize(
    raw: Any,
    resource_id: str,
    ingested_at: Optional[datetime] = None,
) -> Optional[Comment]:
    """Normalize one raw item.

    Accepts YouTube ``commentThread`` resources and flat dicts with
    ``text``/``authorName``/``likeCount``/``publishedAt`` keys. Returns None
    for items with empty text or a shape that can't be read; never raises.
    """
    if ingested_at is None:
        ingested_at = utc_now()
    try:
        return _build_comment(raw, resource_id, ingested_at)
    except MalformedItem as e:
        logger.warning("Skipping malformed comment for %s: %s", resource_id, e)
        return None
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning("Skipping unreadable comment for %s: %r", resource_id, e)
        return None


def normalize_page(items: list[Any], resource_id: str) -> list[Comment]:
    """Normalize a page of raw items, keeping source order and dropping rejections."""
    ingested_at = utc_now()
    comments = []
    rejected = 0

    for raw in items:
        comment = normalize(raw, resource_id, ingested_at)
        if comment is None:
            rejected += 1
            continue
        comments.append(comment)

    if rejected:
        logger.info("Rejected %d of %d items for %s", rejected, len(items), resource_id)
    return comments
