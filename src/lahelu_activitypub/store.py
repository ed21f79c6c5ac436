"""Persistent store for users, posts and followers.

Every write is a single idempotent statement (insert-ignore, upsert by key or
keyed delete), so concurrent tasks that pass the same gate stay consistent
without explicit locking.
"""

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from .models import Follower, Post, User, init_db


class Store:
    """Persistence primitives backed by SQLAlchemy for bridge data."""

    def __init__(self, session_maker: async_sessionmaker) -> None:
        """Initialize the store.

        Args:
            session_maker: Session maker returned by ``init_db``
        """
        self._session_maker = session_maker

    @classmethod
    async def open(cls, database_url: str) -> "Store":
        """Create the schema if absent and return a store bound to it."""
        return cls(await init_db(database_url))

    async def close(self) -> None:
        """Dispose of the engine, closing all connections."""
        await self._session_maker.kw["bind"].dispose()

    # Users ------------------------------------------------------------------

    async def get_user(self, username: str) -> User | None:
        async with self._session_maker() as session:
            return await session.get(User, username)

    async def insert_user(
        self,
        username: str,
        platform_user_id: str,
        description: str = "",
        avatar_url: str = "",
        created_at: int = 0,
    ) -> None:
        """Insert a user row with zeroed sync timestamps, ignoring duplicates."""
        stmt = sqlite_insert(User).values(
            username=username,
            platform_user_id=platform_user_id,
            description=description,
            avatar_url=avatar_url,
            created_at=created_at,
            last_post_sync_at=0,
            last_comment_sync_at=0,
        ).on_conflict_do_nothing(index_elements=[User.username])
        async with self._session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def set_user_keys(self, username: str, public_key: str, private_key: str) -> bool:
        """Store key exports unless the user already has a complete pair.

        Returns:
            True if the keys were stored
        """
        async with self._session_maker() as session:
            result = await session.execute(
                update(User)
                .where(
                    User.username == username,
                    or_(User.public_key.is_(None), User.private_key.is_(None)),
                )
                .values(public_key=public_key, private_key=private_key)
            )
            await session.commit()
            return result.rowcount > 0

    async def mark_posts_synced(self, username: str, at_ms: int) -> None:
        async with self._session_maker() as session:
            await session.execute(
                update(User)
                .where(User.username == username)
                .values(last_post_sync_at=at_ms)
            )
            await session.commit()

    async def count_users(self) -> int:
        async with self._session_maker() as session:
            return await session.scalar(select(func.count()).select_from(User)) or 0

    # Posts ------------------------------------------------------------------

    async def upsert_post(
        self,
        post_id: str,
        username: str,
        title: str,
        raw_content: str,
        sensitive: bool,
        created_at: int,
    ) -> None:
        """Insert a post or overwrite the existing row with the same id."""
        values = {
            "username": username,
            "title": title,
            "raw_content": raw_content,
            "sensitive": sensitive,
            "created_at": created_at,
        }
        stmt = sqlite_insert(Post).values(post_id=post_id, **values)
        stmt = stmt.on_conflict_do_update(index_elements=[Post.post_id], set_=values)
        async with self._session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def list_posts(self, username: str) -> list[Post]:
        """Return all posts of a user, newest first."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(Post)
                .where(Post.username == username)
                .order_by(Post.created_at.desc())
            )
            return list(result.scalars().all())

    # Followers --------------------------------------------------------------

    async def count_followers(self, username: str) -> int:
        async with self._session_maker() as session:
            return await session.scalar(
                select(func.count())
                .select_from(Follower)
                .where(Follower.username == username)
            ) or 0

    async def add_follower(self, username: str, actor: str) -> None:
        stmt = sqlite_insert(Follower).values(
            username=username, actor=actor
        ).on_conflict_do_nothing()
        async with self._session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def remove_follower(self, username: str, actor: str) -> None:
        async with self._session_maker() as session:
            await session.execute(
                delete(Follower).where(
                    Follower.username == username,
                    Follower.actor == actor,
                )
            )
            await session.commit()

    async def list_followers(self, username: str) -> list[str]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Follower.actor)
                .where(Follower.username == username)
                .order_by(Follower.actor)
            )
            return list(result.scalars().all())
