"""Display orderings over an in-memory set of comments."""

from enum import Enum
from typing import Iterable

from sync_comments.models import Comment


class SortMode(str, Enum):
    MOST_LIKED = "mostLiked"
    NEWEST = "newest"
    OLDEST = "oldest"


def order_comments(comments: Iterable[Comment], mode: SortMode | str) -> list[Comment]:
    """Return a new list of comments in the requested order.

    The input is never mutated. Ties keep their input order.

    Raises:
        ValueError: If mode is not one of mostLiked, newest, oldest.
    """
    mode = SortMode(mode)
    items = list(comments)

    if mode is SortMode.MOST_LIKED:
        return sorted(items, key=lambda c: c.like_count, reverse=True)
    if mode is SortMode.NEWEST:
        return sorted(items, key=lambda c: c.published_at, reverse=True)
    return sorted(items, key=lambda c: c.published_at)


present = order_comments
