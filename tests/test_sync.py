"""Tests for TTL- and demand-gated post sync."""

import json

import pytest

from lahelu_activitypub.sync import ContentSynchronizer, SyncOutcome

from conftest import REMOTE_ACTOR, make_post


@pytest.fixture
def synchronizer(store, identity_service, followers, platform_client, clock) -> ContentSynchronizer:
    return ContentSynchronizer(
        store=store,
        identity_service=identity_service,
        followers=followers,
        platform_client=platform_client,
        sync_ttl_ms=300_000,
        clock=clock,
    )


class TestSyncGates:
    """Tests for the gates that short-circuit a sync."""

    @pytest.mark.asyncio
    async def test_unknown_user(self, synchronizer, platform_client):
        assert await synchronizer.sync_posts("nobody") == SyncOutcome.NO_USER
        platform_client.get_user_posts.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_followers_no_fetch(self, synchronizer, platform_client, store):
        assert await synchronizer.sync_posts("alice") == SyncOutcome.NO_FOLLOWERS
        platform_client.get_user_posts.assert_not_awaited()
        assert (await store.get_user("alice")).last_post_sync_at == 0

    @pytest.mark.asyncio
    async def test_ttl_gates_refetch(self, synchronizer, platform_client, followers, clock):
        await followers.record_follow("alice", REMOTE_ACTOR)

        assert await synchronizer.sync_posts("alice") == SyncOutcome.SYNCED
        clock.advance(299_999)
        assert await synchronizer.sync_posts("alice") == SyncOutcome.FRESH
        assert platform_client.get_user_posts.await_count == 1

        clock.advance(1)
        assert await synchronizer.sync_posts("alice") == SyncOutcome.SYNCED
        assert platform_client.get_user_posts.await_count == 2

    @pytest.mark.asyncio
    async def test_zero_ttl_always_fetches(self, synchronizer, platform_client, followers):
        synchronizer.sync_ttl_ms = 0
        await followers.record_follow("alice", REMOTE_ACTOR)

        await synchronizer.sync_posts("alice")
        await synchronizer.sync_posts("alice")

        assert platform_client.get_user_posts.await_count == 2


class TestSyncResults:
    """Tests for what a sync writes."""

    @pytest.mark.asyncio
    async def test_stores_posts_and_stamps_time(self, synchronizer, platform_client, followers, store, clock):
        platform_client.get_user_posts.return_value = [
            make_post("p1", "Hello", create_time=100, sensitive=True),
            make_post("p2", "World", create_time=200),
        ]
        await followers.record_follow("alice", REMOTE_ACTOR)

        await synchronizer.sync_posts("alice")

        platform_client.get_user_posts.assert_awaited_once_with("u-1")
        posts = await store.list_posts("alice")
        assert [p.post_id for p in posts] == ["p2", "p1"]
        assert posts[1].sensitive is True
        assert json.loads(posts[1].raw_content) == [{"type": 1, "value": "media/p1.jpg"}]
        assert (await store.get_user("alice")).last_post_sync_at == clock.now

    @pytest.mark.asyncio
    async def test_latest_fetch_wins(self, synchronizer, platform_client, followers, store, clock):
        await followers.record_follow("alice", REMOTE_ACTOR)
        platform_client.get_user_posts.return_value = [make_post("p1", "Old")]
        await synchronizer.sync_posts("alice")

        clock.advance(300_000)
        platform_client.get_user_posts.return_value = [make_post("p1", "Edited")]
        await synchronizer.sync_posts("alice")

        posts = await store.list_posts("alice")
        assert [p.title for p in posts] == ["Edited"]

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_timestamp(self, synchronizer, platform_client, followers, store):
        await followers.record_follow("alice", REMOTE_ACTOR)
        platform_client.get_user_posts.return_value = None

        assert await synchronizer.sync_posts("alice") == SyncOutcome.FETCH_FAILED
        assert (await store.get_user("alice")).last_post_sync_at == 0

        # Not stamped, so the next call retries immediately
        await synchronizer.sync_posts("alice")
        assert platform_client.get_user_posts.await_count == 2
