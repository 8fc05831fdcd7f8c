"""Build the configured comment store."""

from sync_comments.config import StoreConfig
from sync_comments.store.base import CommentStore
from sync_comments.store.memory_store import MemoryCommentStore
from sync_comments.store.sql_store import SqlCommentStore


def get_store(config: StoreConfig) -> CommentStore:
    if config.backend == "memory":
        return MemoryCommentStore()
    if config.backend == "sql":
        return SqlCommentStore.from_config(config)
    raise ValueError(f"Unknown store backend: {config.backend}")
