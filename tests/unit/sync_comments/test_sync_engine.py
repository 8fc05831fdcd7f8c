"""Tests for sync_comments.sync_engine module."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from sync_comments.errors import (
    InvalidResourceId,
    PersistenceFailed,
    RemoteFetchFailed,
    RemoteSourceError,
    SyncInProgress,
)
from sync_comments.models import Comment, CommentPage, SyncOptions
from sync_comments.store.memory_store import MemoryCommentStore
from sync_comments.sync_engine import (
    CancellationToken,
    SyncEngine,
    apply_cutoff,
    merge_comments,
    validate_resource_id,
)

VIDEO_ID = "dQw4w9WgXcQ"
BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _raw(index: int, published_at: datetime, text: str = None) -> dict:
    return {
        "id": f"c{index}",
        "snippet": {
            "topLevelComment": {
                "snippet": {
                    "textDisplay": f"comment {index}" if text is None else text,
                    "likeCount": index,
                    "publishedAt": published_at.isoformat(),
                    "authorDisplayName": f"user{index}",
                }
            }
        },
    }


def _pages(sizes: list[int], start: datetime = BASE_TIME, total: int = None) -> dict:
    """Build newest-first pages keyed by the token that requests them."""
    pages = {}
    index = 0
    for page_number, size in enumerate(sizes):
        items = []
        for _ in range(size):
            items.append(_raw(index, start - timedelta(minutes=index)))
            index += 1
        token = None if page_number == 0 else f"p{page_number + 1}"
        next_token = f"p{page_number + 2}" if page_number + 1 < len(sizes) else None
        pages[token] = CommentPage(items=items, next_token=next_token, total_hint=total)
    return pages


class FakeSource:
    def __init__(self, pages: dict, fail_on: str = "never"):
        self.pages = pages
        self.fail_on = fail_on
        self.calls = []

    def fetch_page(self, resource_id, token, page_size):
        self.calls.append(token)
        if token == self.fail_on:
            raise RemoteSourceError("quota exceeded", status_code=403)
        return self.pages.get(token, CommentPage(items=[]))


def _comment(index: int, published_at: datetime, text: str = None) -> Comment:
    return Comment(
        resource_id=VIDEO_ID,
        text=f"stored {index}" if text is None else text,
        published_at=published_at,
        like_count=index,
        comment_id=f"s{index}",
    )


@pytest.fixture
def store():
    return MemoryCommentStore()


def _fresh(**kwargs) -> SyncOptions:
    return SyncOptions(force_fresh=True, inter_page_delay_ms=0, **kwargs)


class TestCacheHit:
    def test_returns_stored_comments_without_fetching(self, store) -> None:
        stored = [_comment(1, BASE_TIME), _comment(2, BASE_TIME - timedelta(hours=1))]
        store.replace_all(VIDEO_ID, stored)
        source = FakeSource(_pages([5]))
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, SyncOptions(force_fresh=False))

        assert result.from_cache is True
        assert result.comments == stored
        assert result.next_token is None
        assert source.calls == []

    def test_cache_miss_fetches(self, store) -> None:
        source = FakeSource(_pages([3]))
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, SyncOptions(inter_page_delay_ms=0))

        assert result.from_cache is False
        assert len(result.comments) == 3
        assert source.calls == [None]

    def test_cache_limit_bounds_result(self, store) -> None:
        store.replace_all(VIDEO_ID, [_comment(i, BASE_TIME - timedelta(minutes=i)) for i in range(10)])
        engine = SyncEngine(FakeSource({}), store, cache_limit=4)

        result = engine.sync(VIDEO_ID)

        assert [c.comment_id for c in result.comments] == ["s0", "s1", "s2", "s3"]


class TestExhaustion:
    def test_two_pages_of_fifty(self, store) -> None:
        source = FakeSource(_pages([50, 50]))
        store.replace_all = Mock(wraps=store.replace_all)
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, _fresh(page_size=50))

        assert len(result.comments) == 100
        assert result.next_token is None
        assert result.persisted is True
        assert source.calls == [None, "p2"]
        store.replace_all.assert_called_once()
        saved_id, saved = store.replace_all.call_args.args
        assert saved_id == VIDEO_ID
        assert len(saved) == 100
        assert len(store.query_newest(VIDEO_ID, 2500)) == 100

    def test_empty_page_stops_and_skips_save(self, store) -> None:
        store.replace_all = Mock(wraps=store.replace_all)
        engine = SyncEngine(FakeSource({}), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert result.comments == []
        assert result.next_token is None
        assert result.persisted is False
        store.replace_all.assert_not_called()

    def test_total_hint_comes_from_first_page(self, store) -> None:
        engine = SyncEngine(FakeSource(_pages([2, 2], total=4)), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert result.total_hint == 4


class TestCutoff:
    def test_stops_within_page_at_stored_head(self, store) -> None:
        # Items are one minute apart; store head equals item 3's timestamp
        pages = _pages([5, 5, 5])
        store.replace_all(VIDEO_ID, [_comment(99, BASE_TIME - timedelta(minutes=3))])
        source = FakeSource(pages)
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, _fresh())

        new = [c for c in result.comments if c.comment_id.startswith("c")]
        assert [c.comment_id for c in new] == ["c0", "c1", "c2"]
        assert source.calls == [None]
        assert result.next_token is None

    def test_only_newer_items_are_appended(self, store) -> None:
        head = BASE_TIME - timedelta(minutes=7)
        store.replace_all(VIDEO_ID, [_comment(99, head)])
        source = FakeSource(_pages([5, 5, 5]))
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert all(c.published_at > head for c in result.comments if c.comment_id != "s99")
        assert len(result.comments) == 8
        assert source.calls == [None, "p2"]

    def test_new_comments_are_placed_before_cached(self, store) -> None:
        store.replace_all(VIDEO_ID, [_comment(99, BASE_TIME - timedelta(minutes=2))])
        engine = SyncEngine(FakeSource(_pages([5])), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert [c.comment_id for c in result.comments] == ["c0", "c1", "s99"]
        assert len(store.query_newest(VIDEO_ID, 2500)) == 3

    def test_nothing_new_keeps_store(self, store) -> None:
        stored = [_comment(99, BASE_TIME + timedelta(hours=1))]
        store.replace_all(VIDEO_ID, stored)
        store.replace_all = Mock(wraps=store.replace_all)
        engine = SyncEngine(FakeSource(_pages([5, 5])), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert result.comments == stored
        assert result.persisted is False
        store.replace_all.assert_not_called()

    def test_full_refresh_ignores_cutoff_and_replaces(self, store) -> None:
        store.replace_all(VIDEO_ID, [_comment(99, BASE_TIME + timedelta(hours=1))])
        source = FakeSource(_pages([5, 5]))
        engine = SyncEngine(source, store)

        result = engine.sync(VIDEO_ID, _fresh(incremental=False))

        assert len(result.comments) == 10
        assert source.calls == [None, "p2"]
        stored_ids = {c.comment_id for c in store.query_newest(VIDEO_ID, 2500)}
        assert "s99" not in stored_ids
        assert len(stored_ids) == 10


class TestCacheLimit:
    def _store_five(self, store) -> None:
        store.replace_all(VIDEO_ID, [_comment(i, BASE_TIME - timedelta(minutes=i)) for i in range(5)])

    def test_refresh_keeps_rows_beyond_cache_limit(self, store) -> None:
        self._store_five(store)
        source = FakeSource(_pages([1], start=BASE_TIME + timedelta(hours=1)))
        engine = SyncEngine(source, store, cache_limit=3)

        result = engine.sync(VIDEO_ID, _fresh())

        assert [c.comment_id for c in result.comments] == ["c0", "s0", "s1", "s2", "s3", "s4"]
        assert len(store.query_newest(VIDEO_ID, None)) == 6

    def test_resume_keeps_rows_beyond_cache_limit(self, store) -> None:
        self._store_five(store)
        source = FakeSource(_pages([2, 2], start=BASE_TIME - timedelta(days=1)))
        engine = SyncEngine(source, store, cache_limit=3)

        result = engine.sync(VIDEO_ID, _fresh(continuation_token="p2"))

        assert source.calls == ["p2"]
        assert len(result.comments) == 7
        assert len(store.query_newest(VIDEO_ID, None)) == 7

    def test_remote_failure_fallback_stays_capped(self, store) -> None:
        self._store_five(store)
        engine = SyncEngine(FakeSource({}, fail_on=None), store, cache_limit=3)

        with pytest.raises(RemoteFetchFailed) as exc_info:
            engine.sync(VIDEO_ID, _fresh())

        assert [c.comment_id for c in exc_info.value.fallback] == ["s0", "s1", "s2"]
        assert len(store.query_newest(VIDEO_ID, None)) == 5

class TestRejectionFilter:
    def test_empty_text_items_are_dropped(self, store) -> None:
        page = CommentPage(items=[
            _raw(0, BASE_TIME, text="   "),
            _raw(1, BASE_TIME - timedelta(minutes=1), text="valid"),
        ])
        engine = SyncEngine(FakeSource({None: page}), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert [c.text for c in result.comments] == ["valid"]
        assert [c.text for c in store.query_newest(VIDEO_ID, 10)] == ["valid"]

    def test_malformed_items_do_not_abort(self, store) -> None:
        page = CommentPage(items=[
            {"id": "bad", "snippet": {}},
            _raw(1, BASE_TIME),
        ])
        engine = SyncEngine(FakeSource({None: page}), store)

        result = engine.sync(VIDEO_ID, _fresh())

        assert [c.comment_id for c in result.comments] == ["c1"]


class TestCancellationAndResume:
    def test_cancel_after_first_page_then_resume(self, store) -> None:
        source = FakeSource(_pages([3, 3, 3]))
        engine = SyncEngine(source, store)

        def cancel_on_first_page(progress):
            if progress.page == 1:
                assert engine.cancel(VIDEO_ID) is True

        first = engine.sync(VIDEO_ID, _fresh(), on_progress=cancel_on_first_page)

        assert first.cancelled is True
        assert first.next_token == "p2"
        assert first.persisted is True
        assert source.calls == [None]
        assert len(store.query_newest(VIDEO_ID, 2500)) == 3

        source.calls.clear()
        second = engine.sync(
            VIDEO_ID,
            SyncOptions(force_fresh=False, continuation_token=first.next_token, inter_page_delay_ms=0),
        )

        assert source.calls == ["p2", "p3"]
        assert second.next_token is None
        assert [c.comment_id for c in second.comments] == [f"c{i}" for i in range(9)]
        assert len(store.query_newest(VIDEO_ID, 2500)) == 9

    def test_cancel_during_delay_stops_before_next_fetch(self, store) -> None:
        source = FakeSource(_pages([2, 2, 2]))
        engine = SyncEngine(source, store)
        options = SyncOptions(force_fresh=True, inter_page_delay_ms=60_000)

        timers = []

        def cancel_later(progress):
            timer = threading.Timer(0.05, engine.cancel, args=(VIDEO_ID,))
            timers.append(timer)
            timer.start()

        try:
            result = engine.sync(VIDEO_ID, options, on_progress=cancel_later)
        finally:
            for timer in timers:
                timer.cancel()
                timer.join()

        assert result.cancelled is True
        assert result.next_token == "p2"
        assert source.calls == [None]

    def test_cancel_without_session_returns_false(self, store) -> None:
        engine = SyncEngine(FakeSource({}), store)
        assert engine.cancel(VIDEO_ID) is False

    def test_session_is_released_after_sync(self, store) -> None:
        engine = SyncEngine(FakeSource(_pages([1])), store)
        engine.sync(VIDEO_ID, _fresh())
        assert engine.is_running(VIDEO_ID) is False


class TestConcurrency:
    def test_second_session_for_same_id_is_rejected(self, store) -> None:
        engine = SyncEngine(FakeSource(_pages([1, 1])), store)
        errors = []

        def start_another(progress):
            try:
                engine.sync(VIDEO_ID, _fresh())
            except SyncInProgress as e:
                errors.append(e)

        engine.sync(VIDEO_ID, _fresh(), on_progress=start_another)

        assert len(errors) == 2
        assert errors[0].resource_id == VIDEO_ID

    def test_other_ids_are_not_blocked(self, store) -> None:
        other_id = "aaaaaaaaaaa"
        engine = SyncEngine(FakeSource(_pages([1])), store)
        results = []

        def sync_other(progress):
            if progress.resource_id == VIDEO_ID:
                results.append(engine.sync(other_id, _fresh()))

        engine.sync(VIDEO_ID, _fresh(), on_progress=sync_other)

        assert len(results) == 1
        assert len(results[0].comments) == 1

    def test_cancel_does_not_block_while_registry_is_held(self, store) -> None:
        engine = SyncEngine(FakeSource({}), store)
        cancel_token = engine._begin(VIDEO_ID)
        try:
            # Same thread re-entering, as a SIGINT handler would
            with engine._lock:
                assert engine.cancel(VIDEO_ID) is True
                assert engine.is_running(VIDEO_ID) is True
        finally:
            engine._end(VIDEO_ID)

        assert cancel_token.cancelled is True


class TestFailures:
    def test_invalid_id_rejected_before_any_call(self, store) -> None:
        source = FakeSource(_pages([1]))
        store.query_newest = Mock()
        engine = SyncEngine(source, store)

        with pytest.raises(InvalidResourceId):
            engine.sync("not a video id")

        assert source.calls == []
        store.query_newest.assert_not_called()

    def test_remote_failure_returns_fallback_and_saves_nothing(self, store) -> None:
        stored = [_comment(99, BASE_TIME - timedelta(days=1))]
        store.replace_all(VIDEO_ID, stored)
        store.replace_all = Mock(wraps=store.replace_all)
        engine = SyncEngine(FakeSource(_pages([2, 2, 2]), fail_on="p2"), store)

        with pytest.raises(RemoteFetchFailed) as exc_info:
            engine.sync(VIDEO_ID, _fresh())

        assert exc_info.value.fallback == stored
        assert exc_info.value.next_token == "p2"
        assert isinstance(exc_info.value.__cause__, RemoteSourceError)
        store.replace_all.assert_not_called()
        assert store.query_newest(VIDEO_ID, 10) == stored
        assert engine.is_running(VIDEO_ID) is False

    def test_persistence_failure_carries_result(self, store) -> None:
        store.replace_all = Mock(side_effect=PersistenceFailed(VIDEO_ID, "disk full"))
        engine = SyncEngine(FakeSource(_pages([2])), store)

        with pytest.raises(PersistenceFailed) as exc_info:
            engine.sync(VIDEO_ID, _fresh())

        assert exc_info.value.result is not None
        assert len(exc_info.value.result.comments) == 2
        assert exc_info.value.result.persisted is False


class TestHelpers:
    def test_validate_resource_id(self) -> None:
        assert validate_resource_id(VIDEO_ID) == VIDEO_ID
        for bad in ["", "short", "dQw4w9WgXcQx", "dQw4w9WgX!Q", None]:
            with pytest.raises(InvalidResourceId):
                validate_resource_id(bad)

    def test_apply_cutoff_without_cutoff_keeps_everything(self) -> None:
        comments = [_comment(1, BASE_TIME)]
        assert apply_cutoff(comments, None) == (comments, False)

    def test_apply_cutoff_equal_timestamp_is_cut(self) -> None:
        comments = [_comment(1, BASE_TIME), _comment(2, BASE_TIME - timedelta(minutes=1))]
        kept, reached = apply_cutoff(comments, BASE_TIME)
        assert kept == []
        assert reached is True

    def test_merge_drops_repeated_comment_ids(self) -> None:
        a = _comment(1, BASE_TIME)
        b = _comment(1, BASE_TIME - timedelta(minutes=1), text="older copy")
        anonymous = Comment(resource_id=VIDEO_ID, text="x", published_at=BASE_TIME)
        merged = merge_comments([a, anonymous], [b, anonymous])
        assert merged == [a, anonymous, anonymous]

    def test_cancellation_token_wait(self) -> None:
        token = CancellationToken()
        assert token.wait(0) is False
        token.cancel()
        assert token.cancelled is True
        assert token.wait(10) is True
