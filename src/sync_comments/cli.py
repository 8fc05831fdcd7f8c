"""CLI for syncing YouTube comments."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from dotenv import load_dotenv

from common.aws import upload_jsonl_records_to_s3
from common.cli_helpers import setup_logging
from common.local_io import save_jsonl_records_local
from sync_comments.config import Config, load_config, set_config
from sync_comments.errors import InvalidResourceId, PersistenceFailed, RemoteFetchFailed
from sync_comments.fetch_comments.youtube import YouTubeCommentSource
from sync_comments.helpers import build_sync_options, extract_video_id, parse_sync_comments_args
from sync_comments.models import Comment, SyncProgress, SyncResult
from sync_comments.present import order_comments
from sync_comments.store.factory import get_store
from sync_comments.sync_engine import SyncEngine

load_dotenv()

logger = logging.getLogger(__name__)


def _log_progress(progress: SyncProgress) -> None:
    total = f" / {progress.total_hint}" if progress.total_hint else ""
    logger.info("Loading comments: %d%s", progress.loaded, total)


def _print_comments(comments: list[Comment], sort: str, limit: int) -> None:
    for comment in order_comments(comments, sort)[:limit]:
        text = " ".join(comment.text.split())
        print(f"{comment.like_count:>7} likes  {comment.published_at:%Y-%m-%d %H:%M}  {comment.author}: {text}")


def _export(result: SyncResult, video_id: str, args: argparse.Namespace, config: Config) -> None:
    name = f"comments_{video_id}"
    if args.load_local:
        save_jsonl_records_local(result.comments, name, config.output.local_dir)
    if args.load_s3:
        upload_jsonl_records_to_s3(result.comments, config.output.s3_prefix, name)


def run(args: argparse.Namespace) -> int:
    """Run one sync session and return the process exit code."""
    config = load_config(args.config)
    set_config(config)

    video_id = extract_video_id(args.video)
    if video_id is None:
        logger.error("Invalid YouTube link: %s", args.video)
        return 2

    try:
        source = YouTubeCommentSource.from_config(config.youtube)
        store = get_store(config.store)
    except ValueError as e:
        logger.error("Cannot start sync: %s", e)
        return 2

    engine = SyncEngine(source, store, cache_limit=config.sync.cache_limit)
    options = build_sync_options(args, config.sync)

    # Ctrl-C stops after the current page; what was loaded is still saved
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: engine.cancel(video_id))
    exit_code = 0
    try:
        result = engine.sync(video_id, options, on_progress=_log_progress)
    except InvalidResourceId as e:
        logger.error("%s", e)
        return 2
    except RemoteFetchFailed as e:
        logger.error("%s", e)
        if e.fallback:
            print(f"Showing {len(e.fallback)} previously stored comments")
            _print_comments(e.fallback, args.sort, args.limit)
        if e.next_token:
            print(f"Retry with --resume-token {e.next_token}")
        return 1
    except PersistenceFailed as e:
        logger.error("%s", e)
        if e.result is None:
            return 1
        result = e.result
        exit_code = 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    source_label = "store" if result.from_cache else "YouTube"
    print(f"Total comments loaded: {len(result.comments)} (from {source_label})")
    _print_comments(result.comments, args.sort, args.limit)
    if result.next_token:
        print(f"Load more with --resume-token {result.next_token}")

    _export(result, video_id, args, config)
    return exit_code


def main() -> None:
    args = parse_sync_comments_args()
    setup_logging()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
