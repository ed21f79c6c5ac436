"""Pulls a bridged user's latest Lahelu posts into the local store."""

import json
import time
from enum import Enum
from typing import Callable

import structlog

from .followers import FollowerRegistry
from .identity import IdentityService
from .platform_client import LaheluClient
from .store import Store

logger = structlog.get_logger()

DEFAULT_SYNC_TTL_MS = 300_000


def now_ms() -> int:
    return int(time.time() * 1000)


class SyncOutcome(str, Enum):
    """Why a sync call returned."""
    NO_USER = "no_user"
    NO_FOLLOWERS = "no_followers"
    FRESH = "fresh"
    FETCH_FAILED = "fetch_failed"
    SYNCED = "synced"


class ContentSynchronizer:
    """TTL- and demand-gated sync of the first page of a user's posts."""

    def __init__(
        self,
        store: Store,
        identity_service: IdentityService,
        followers: FollowerRegistry,
        platform_client: LaheluClient,
        sync_ttl_ms: int = DEFAULT_SYNC_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize synchronizer.

        Args:
            store: Persistent store
            identity_service: Provisioner used to admit the user
            followers: Follower registry used as the demand gate
            platform_client: Lahelu API client
            sync_ttl_ms: Minimum interval between fetches for one user
            clock: Returns the current time in epoch milliseconds
        """
        self.store = store
        self.identity = identity_service
        self.followers = followers
        self.platform = platform_client
        self.sync_ttl_ms = sync_ttl_ms
        self.clock = clock

    async def sync_posts(self, username: str) -> SyncOutcome:
        """Refresh the user's posts if anyone follows them and the TTL expired.

        Each gate short-circuits. A failed fetch leaves ``last_post_sync_at``
        untouched so the next call retries.
        """
        user = await self.identity.ensure_user(username)
        if user is None:
            return SyncOutcome.NO_USER

        if not await self.followers.has_followers(username):
            return SyncOutcome.NO_FOLLOWERS

        now = self.clock()
        if now - user.last_post_sync_at < self.sync_ttl_ms:
            return SyncOutcome.FRESH

        posts = await self.platform.get_user_posts(user.platform_user_id)
        if posts is None:
            return SyncOutcome.FETCH_FAILED

        for post in posts:
            await self.store.upsert_post(
                post_id=post.post_id,
                username=username,
                title=post.title,
                raw_content=json.dumps(post.content),
                sensitive=bool(post.is_sensitive),
                created_at=post.create_time,
            )

        await self.store.mark_posts_synced(username, self.clock())
        logger.info("Synced posts", username=username, count=len(posts))

        return SyncOutcome.SYNCED
