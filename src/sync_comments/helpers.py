"""Helper functions for the sync_comments CLI."""

from __future__ import annotations

import argparse
import re
from functools import partial

from common.cli_helpers import parse_non_negative_int, parse_positive_int
from sync_comments.config import SyncConfig
from sync_comments.models import SyncOptions
from sync_comments.present import SortMode
from sync_comments.sync_engine import RESOURCE_ID_PATTERN

VIDEO_ID_IN_URL = re.compile(r"(?:v=|/)([0-9A-Za-z_-]{11})")


def extract_video_id(value: str | None) -> str | None:
    '''Extract an 11-character video id from a bare id or a YouTube URL.'''
    if not value:
        return None
    value = value.strip()
    if RESOURCE_ID_PATTERN.match(value):
        return value
    match = VIDEO_ID_IN_URL.search(value)
    return match.group(1) if match else None


def parse_sync_comments_args(argv: list[str] | None = None) -> argparse.Namespace:
    '''Parse CLI arguments for sync_comments.'''

    parser = argparse.ArgumentParser(
        description="Sync YouTube comments for a video into the local store"
    )
    parser.add_argument("--video", required=True, help="YouTube video URL or id")
    parser.add_argument(
        "--config",
        default=None,
        help="Config name (test/prod) or path to YAML file. Defaults to COMMENT_SYNC_CONFIG or 'prod'",
    )
    parser.add_argument(
        "--force-fresh",
        action="store_true",
        help="Query the API even when comments are already stored",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="With --force-fresh, refetch everything instead of stopping at stored comments",
    )
    parser.add_argument("--resume-token", default=None, help="Continue a previous sync from this page token")
    parser.add_argument("--page-size", type=partial(parse_positive_int, field_name="--page-size"), default=None)
    parser.add_argument("--delay-ms", type=partial(parse_non_negative_int, field_name="--delay-ms"), default=None)
    parser.add_argument(
        "--sort",
        choices=[mode.value for mode in SortMode],
        default=SortMode.MOST_LIKED.value,
    )
    parser.add_argument("--limit", type=partial(parse_non_negative_int, field_name="--limit"), default=20,
                        help="Number of comments to print (0 prints none)")
    parser.add_argument("--load-local", action="store_true")
    parser.add_argument("--load-s3", action="store_true")
    return parser.parse_args(argv)


def build_sync_options(args: argparse.Namespace, sync_config: SyncConfig) -> SyncOptions:
    '''Combine CLI arguments with configured defaults.'''
    return SyncOptions(
        force_fresh=args.force_fresh,
        page_size=args.page_size if args.page_size is not None else sync_config.page_size,
        inter_page_delay_ms=(
            args.delay_ms if args.delay_ms is not None else sync_config.inter_page_delay_ms
        ),
        continuation_token=args.resume_token,
        incremental=not args.full,
    )
