"""Registry of remote actors following bridged users."""

import structlog

from .federation import Context
from .store import Store

logger = structlog.get_logger()


class FollowerRegistry:
    """Tracks which remote actors follow which local actor.

    Follower presence is also the signal that syncing and serving a user's
    posts is worth the remote fetch.
    """

    def __init__(self, store: Store):
        self.store = store

    async def has_followers(self, username: str) -> bool:
        return await self.store.count_followers(username) > 0

    async def record_follow(self, username: str, actor: str) -> None:
        """Add a follower; recording an existing pair is a no-op."""
        await self.store.add_follower(username, actor)
        logger.info("Recorded follower", username=username, actor=actor)

    async def remove_follow(self, username: str, actor: str) -> None:
        """Remove a follower; removing an absent pair is a no-op."""
        await self.store.remove_follower(username, actor)
        logger.info("Removed follower", username=username, actor=actor)

    async def list_followers(self, username: str) -> list[str]:
        return await self.store.list_followers(username)

    async def dispatch_followers(self, ctx: Context, identifier: str) -> list[str]:
        return await self.list_followers(identifier)
