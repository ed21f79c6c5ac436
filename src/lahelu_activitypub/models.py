"""Database models for Lahelu ActivityPub Bridge.

All timestamps are epoch milliseconds, as reported by the Lahelu API.
"""

from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    event,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """A bridged Lahelu account, exposed as actor /users/{username}."""
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(128), primary_key=True)
    platform_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    avatar_url: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    # Lahelu account creation time
    created_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 0 means never synced
    last_post_sync_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_comment_sync_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # JSON-serialized JWK halves of the actor's signing key
    public_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    private_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Post(Base):
    """A Lahelu post mirrored for the owner's outbox."""
    __tablename__ = "posts"

    post_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.username"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Original content blocks as JSON, never interpreted by the bridge
    raw_content: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    __table_args__ = (
        Index("ix_posts_username_created", "username", "created_at"),
    )


class Comment(Base):
    """A Lahelu comment. Reserved for comment sync."""
    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)


class Follower(Base):
    """A remote actor following a local actor."""
    __tablename__ = "followers"

    username: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.username"), primary_key=True
    )
    # Remote actor URI, e.g. https://mastodon.social/users/alice
    actor: Mapped[str] = mapped_column(String(512), primary_key=True)


def _enable_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


async def init_db(database_url: str) -> async_sessionmaker:
    """Initialize database and return session maker."""
    engine = create_async_engine(database_url, echo=False)

    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_wal)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False)
