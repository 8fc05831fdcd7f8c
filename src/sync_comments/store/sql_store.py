"""SQLAlchemy-backed comment store (PostgreSQL in prod, SQLite locally)."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from common.datetime import ensure_utc
from common.db import build_engine, build_session_factory, get_database_url, get_session
from sync_comments.config import StoreConfig
from sync_comments.errors import PersistenceFailed
from sync_comments.models import DEFAULT_AUTHOR, Comment

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class CommentRecord(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    resource_id: Mapped[str] = mapped_column(String(32), index=True)
    comment_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    author: Mapped[str] = mapped_column(Text, default=DEFAULT_AUTHOR)
    text: Mapped[str] = mapped_column(Text)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    author_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


def _to_record(resource_id: str, comment: Comment) -> CommentRecord:
    return CommentRecord(
        resource_id=resource_id,
        comment_id=comment.comment_id,
        author=comment.author,
        text=comment.text,
        like_count=comment.like_count,
        # SQLite drops tzinfo, so everything is stored as UTC
        published_at=ensure_utc(comment.published_at),
        author_url=comment.author_url,
    )


def _to_comment(record: CommentRecord) -> Comment:
    return Comment(
        resource_id=record.resource_id,
        text=record.text,
        published_at=ensure_utc(record.published_at),
        like_count=record.like_count,
        author=record.author,
        author_url=record.author_url,
        comment_id=record.comment_id,
    )


class SqlCommentStore:
    def __init__(self, engine: Engine, create_tables: bool = True):
        self.engine = engine
        self._session_factory = build_session_factory(engine)
        if create_tables:
            Base.metadata.create_all(engine)

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SqlCommentStore":
        database_url = get_database_url(config.database_url_env)
        return cls(build_engine(database_url, echo=config.echo))

    def replace_all(self, resource_id: str, comments: list[Comment]) -> None:
        """Delete every row for resource_id and insert comments in one transaction."""
        try:
            with get_session(self._session_factory) as session:
                result = session.execute(
                    delete(CommentRecord).where(CommentRecord.resource_id == resource_id)
                )
                session.add_all([_to_record(resource_id, c) for c in comments])
        except SQLAlchemyError as e:
            logger.error("Failed to replace comments for %s: %s", resource_id, e)
            raise PersistenceFailed(resource_id, f"Failed to save comments: {e}") from e

        logger.info(
            "Replaced comments for %s (%d deleted, %d inserted)",
            resource_id,
            result.rowcount,
            len(comments),
        )

    def query_newest(self, resource_id: str, limit: Optional[int]) -> list[Comment]:
        stmt = (
            select(CommentRecord)
            .where(
                CommentRecord.resource_id == resource_id,
                func.trim(CommentRecord.text) != "",
                CommentRecord.like_count >= 0,
                CommentRecord.published_at.is_not(None),
            )
            .order_by(CommentRecord.published_at.desc(), CommentRecord.id)
            .limit(limit)
        )
        with get_session(self._session_factory) as session:
            records = session.execute(stmt).scalars().all()
            return [_to_comment(r) for r in records]

    def query_latest_timestamp(self, resource_id: str) -> Optional[datetime]:
        stmt = select(func.max(CommentRecord.published_at)).where(
            CommentRecord.resource_id == resource_id
        )
        with get_session(self._session_factory) as session:
            latest = session.execute(stmt).scalar_one_or_none()
        return ensure_utc(latest) if latest is not None else None
