"""YouTube Data API comment source."""

import logging
import os
from typing import Optional, Protocol

import requests
from dotenv import load_dotenv

from sync_comments.config import YouTubeConfig
from sync_comments.errors import RemoteSourceError
from sync_comments.models import CommentPage

load_dotenv()

logger = logging.getLogger(__name__)

USER_AGENT = "sync-comments/1.0"
# YouTube caps commentThreads.maxResults at 100
MAX_PAGE_SIZE = 100


class CommentSource(Protocol):
    """A paginated comment source.

    Pages must be returned newest-first: the sync cutoff stops at the first
    item that is not newer than the stored head, which is only correct when
    timestamps never increase along the walk.
    """

    def fetch_page(
        self, resource_id: str, token: Optional[str], page_size: int
    ) -> CommentPage:
        ...


class YouTubeCommentSource:
    """Fetches top-level comment threads for a video, newest first."""

    def __init__(
        self,
        api_key: str,
        base_url: str = YouTubeConfig.base_url,
        timeout: int = YouTubeConfig.request_timeout,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("A YouTube API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: YouTubeConfig) -> "YouTubeCommentSource":
        api_key = os.environ.get(config.api_key_env)
        if not api_key:
            raise ValueError(f"{config.api_key_env} environment variable is required")
        return cls(api_key, base_url=config.base_url, timeout=config.request_timeout)

    def fetch_page(
        self, resource_id: str, token: Optional[str], page_size: int
    ) -> CommentPage:
        params = {
            "key": self.api_key,
            "videoId": resource_id,
            "part": "snippet",
            "order": "time",
            "textFormat": "html",
            "maxResults": max(1, min(page_size, MAX_PAGE_SIZE)),
        }
        if token:
            params["pageToken"] = token

        try:
            response = self.session.get(
                f"{self.base_url}/commentThreads",
                params=params,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.RequestException as e:
            raise RemoteSourceError(f"Request for {resource_id} failed: {e}") from e

        data = _parse_response(response, resource_id)
        items = data.get("items") or []
        total = (data.get("pageInfo") or {}).get("totalResults")

        logger.debug("Fetched %d items for %s (token=%s)", len(items), resource_id, token)
        return CommentPage(
            items=items,
            next_token=data.get("nextPageToken") or None,
            total_hint=total if isinstance(total, int) else None,
        )


def _parse_response(response: requests.Response, resource_id: str) -> dict:
    try:
        data = response.json()
    except ValueError:
        data = None

    if response.status_code >= 400 or not isinstance(data, dict) or "error" in data:
        message = _error_message(data) or response.reason or "invalid response"
        raise RemoteSourceError(
            f"YouTube API error for {resource_id} ({response.status_code}): {message}",
            status_code=response.status_code,
        )
    return data


def _error_message(data) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None
