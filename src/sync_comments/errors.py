"""Exceptions raised by the comment sync pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sync_comments.models import Comment, SyncResult


class RemoteSourceError(Exception):
    """A comment source could not return a page."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedItem(ValueError):
    """A raw item could not be turned into a Comment."""


class SyncFailed(Exception):
    """Base class for failures of a sync session."""

    def __init__(self, resource_id: str, message: str):
        super().__init__(message)
        self.resource_id = resource_id


class InvalidResourceId(SyncFailed, ValueError):
    def __init__(self, resource_id: str):
        super().__init__(resource_id, f"Invalid video id: {resource_id!r}")


class SyncInProgress(SyncFailed):
    def __init__(self, resource_id: str):
        super().__init__(resource_id, f"A sync is already running for {resource_id}")


class RemoteFetchFailed(SyncFailed):
    """Pagination aborted by a source error. Nothing from the session was persisted.

    ``fallback`` holds the comments that were already cached and
    ``next_token`` the token whose fetch failed, so the caller can retry.
    """

    def __init__(
        self,
        resource_id: str,
        message: str,
        fallback: list[Comment],
        next_token: Optional[str] = None,
    ):
        super().__init__(resource_id, message)
        self.fallback = fallback
        self.next_token = next_token


class PersistenceFailed(SyncFailed):
    """The store rejected a write. ``result`` is the computed, unsaved result."""

    def __init__(self, resource_id: str, message: str, result: Optional[SyncResult] = None):
        super().__init__(resource_id, message)
        self.result = result
