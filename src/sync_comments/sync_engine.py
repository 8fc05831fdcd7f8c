"""Incremental comment synchronization.

A sync session serves comments from the store when it can, and otherwise
walks the remote source page by page until one of:

- the source runs out of pages,
- a page reaches comments that are already stored (the cutoff),
- the caller cancels the session.

Whatever the session accumulated is merged with the cached comments and
written back in a single replace. A source failure aborts the session
without writing anything.
"""

import logging
import re
import threading
import time
from typing import Callable, Optional

from sync_comments.errors import (
    InvalidResourceId,
    PersistenceFailed,
    RemoteFetchFailed,
    RemoteSourceError,
    SyncInProgress,
)
from sync_comments.fetch_comments.youtube import CommentSource
from sync_comments.models import (
    Comment,
    SyncCursor,
    SyncOptions,
    SyncProgress,
    SyncResult,
)
from sync_comments.normalize import normalize_page
from sync_comments.store.base import CommentStore

logger = logging.getLogger(__name__)

CACHE_LIMIT = 2500
RESOURCE_ID_PATTERN = re.compile(r"^[0-9A-Za-z_-]{11}$")

ProgressCallback = Callable[[SyncProgress], None]


class CancellationToken:
    """Cooperative stop signal for one session."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds, returning early (True) if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


def validate_resource_id(resource_id) -> str:
    if not isinstance(resource_id, str) or not RESOURCE_ID_PATTERN.match(resource_id):
        raise InvalidResourceId(resource_id)
    return resource_id


def apply_cutoff(comments: list[Comment], cutoff) -> tuple[list[Comment], bool]:
    """Truncate a newest-first page at the first comment not newer than cutoff.

    Returns the kept comments and whether the cutoff was reached.
    """
    if cutoff is None:
        return comments, False
    for index, comment in enumerate(comments):
        if comment.published_at <= cutoff:
            return comments[:index], True
    return comments, False


def merge_comments(*groups: list[Comment]) -> list[Comment]:
    """Concatenate groups in order, dropping repeats of a known comment_id."""
    seen: set[str] = set()
    merged = []
    for group in groups:
        for comment in group:
            if comment.comment_id is not None:
                if comment.comment_id in seen:
                    continue
                seen.add(comment.comment_id)
            merged.append(comment)
    return merged


class SyncEngine:
    """Keeps the comment store in step with a remote comment source.

    At most one session runs per resource id; a second concurrent call for
    the same id raises SyncInProgress. Sessions for different ids may run in
    parallel threads.
    """

    def __init__(
        self,
        source: CommentSource,
        store: CommentStore,
        cache_limit: int = CACHE_LIMIT,
    ):
        self.source = source
        self.store = store
        self.cache_limit = cache_limit
        self._sessions: dict[str, CancellationToken] = {}
        # cancel() may run in a SIGINT handler on a thread already holding it
        self._lock = threading.RLock()

    def sync(
        self,
        resource_id: str,
        options: Optional[SyncOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """Synchronize comments for resource_id and return the resulting set.

        Raises:
            InvalidResourceId: Before any store or network access.
            SyncInProgress: Another session for resource_id is running.
            RemoteFetchFailed: A page fetch failed; nothing was persisted.
            PersistenceFailed: The final write failed; ``result`` is attached.
        """
        options = options or SyncOptions()
        validate_resource_id(resource_id)

        cancel_token = self._begin(resource_id)
        try:
            return self._run(resource_id, options, cancel_token, on_progress)
        finally:
            self._end(resource_id)

    def cancel(self, resource_id: str) -> bool:
        """Ask the running session for resource_id to stop after its current page.

        Returns False when no session is running for it.
        """
        with self._lock:
            cancel_token = self._sessions.get(resource_id)
        if cancel_token is None:
            return False
        cancel_token.cancel()
        logger.info("Cancellation requested for %s", resource_id)
        return True

    def is_running(self, resource_id: str) -> bool:
        with self._lock:
            return resource_id in self._sessions

    def _begin(self, resource_id: str) -> CancellationToken:
        with self._lock:
            if resource_id in self._sessions:
                raise SyncInProgress(resource_id)
            cancel_token = CancellationToken()
            self._sessions[resource_id] = cancel_token
            return cancel_token

    def _end(self, resource_id: str) -> None:
        with self._lock:
            self._sessions.pop(resource_id, None)

    def _run(
        self,
        resource_id: str,
        options: SyncOptions,
        cancel_token: CancellationToken,
        on_progress: Optional[ProgressCallback],
    ) -> SyncResult:
        cached = self.store.query_newest(resource_id, self.cache_limit)
        resuming = options.continuation_token is not None

        if not options.force_fresh and not resuming and cached:
            logger.info("Serving %d cached comments for %s", len(cached), resource_id)
            return SyncResult(comments=cached, from_cache=True)

        cursor = SyncCursor(
            resource_id=resource_id,
            continuation_token=options.continuation_token,
            cutoff_timestamp=self._cutoff_for(resource_id, options),
        )
        logger.info(
            "Starting sync for %s (resume=%s, cutoff=%s, cached=%d)",
            resource_id,
            resuming,
            cursor.cutoff_timestamp.isoformat() if cursor.cutoff_timestamp else None,
            len(cached),
        )
        start_time = time.monotonic()

        try:
            self._paginate(cursor, options, cancel_token, on_progress)
        except RemoteSourceError as e:
            logger.error(
                "Sync for %s failed after %d pages: %s", resource_id, cursor.pages_fetched, e
            )
            raise RemoteFetchFailed(
                resource_id,
                f"Failed to fetch comments for {resource_id}: {e}",
                fallback=cached,
                next_token=cursor.continuation_token,
            ) from e

        stored = self._stored_for_merge(resource_id, cached)
        comments = self._merge(cursor, stored, options)
        result = SyncResult(
            comments=comments,
            next_token=None if cursor.exhausted else cursor.continuation_token,
            total_hint=cursor.total_hint,
            cancelled=cursor.cancelled,
        )

        if cursor.accumulated:
            try:
                self.store.replace_all(resource_id, comments)
            except PersistenceFailed as e:
                e.result = result
                raise
            result.persisted = True
        else:
            logger.info("No new comments for %s, skipping save", resource_id)

        elapsed = time.monotonic() - start_time
        logger.info(
            "Synced %s: %d new, %d total, %d pages in %.2fs%s",
            resource_id,
            len(cursor.accumulated),
            len(comments),
            cursor.pages_fetched,
            elapsed,
            " (cancelled)" if cursor.cancelled else "",
        )
        return result

    def _stored_for_merge(self, resource_id: str, cached: list[Comment]) -> list[Comment]:
        # replace_all rewrites every row, so merge against all of them, not the capped view
        if len(cached) < self.cache_limit:
            return cached
        return self.store.query_newest(resource_id, None)

    def _cutoff_for(self, resource_id: str, options: SyncOptions):
        # A resumed walk is already older than the stored head
        if options.continuation_token is not None:
            return None
        if options.force_fresh and not options.incremental:
            return None
        return self.store.query_latest_timestamp(resource_id)

    def _paginate(
        self,
        cursor: SyncCursor,
        options: SyncOptions,
        cancel_token: CancellationToken,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        delay_seconds = max(options.inter_page_delay_ms, 0) / 1000

        while True:
            page = self.source.fetch_page(
                cursor.resource_id, cursor.continuation_token, options.page_size
            )
            cursor.pages_fetched += 1

            if page is None or not page.items:
                cursor.exhausted = True
                break

            if cursor.pages_fetched == 1:
                cursor.total_hint = page.total_hint

            comments = normalize_page(page.items, cursor.resource_id)
            comments, reached_cutoff = apply_cutoff(comments, cursor.cutoff_timestamp)
            cursor.accumulated.extend(comments)

            logger.info(
                "Page %d for %s: %d comments (%d loaded%s)",
                cursor.pages_fetched,
                cursor.resource_id,
                len(comments),
                len(cursor.accumulated),
                f" / {cursor.total_hint}" if cursor.total_hint else "",
            )
            if on_progress is not None:
                on_progress(
                    SyncProgress(
                        resource_id=cursor.resource_id,
                        loaded=len(cursor.accumulated),
                        total_hint=cursor.total_hint,
                        page=cursor.pages_fetched,
                    )
                )

            if reached_cutoff:
                logger.info("Reached stored comments for %s, stopping", cursor.resource_id)
                cursor.exhausted = True
                break

            if not page.next_token:
                cursor.exhausted = True
                break
            cursor.continuation_token = page.next_token

            if cancel_token.cancelled or cancel_token.wait(delay_seconds):
                cursor.cancelled = True
                logger.info(
                    "Sync for %s cancelled after %d pages", cursor.resource_id, cursor.pages_fetched
                )
                break

    def _merge(
        self, cursor: SyncCursor, stored: list[Comment], options: SyncOptions
    ) -> list[Comment]:
        if options.continuation_token is not None:
            return merge_comments(stored, cursor.accumulated)
        if options.force_fresh and not options.incremental:
            # Nothing fetched means nothing replaced, so the store is unchanged
            return merge_comments(cursor.accumulated) if cursor.accumulated else list(stored)
        return merge_comments(cursor.accumulated, stored)
