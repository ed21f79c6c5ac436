"""Pytest configuration and fixtures for Lahelu bridge tests."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from lahelu_activitypub.config import BridgeConfig
from lahelu_activitypub.federation import Federation
from lahelu_activitypub.followers import FollowerRegistry
from lahelu_activitypub.identity import IdentityService
from lahelu_activitypub.platform_client import LaheluClient, PlatformPost, PlatformUser
from lahelu_activitypub.store import Store

ORIGIN = "https://bridge.test"
REMOTE_ACTOR = "https://remote.example/users/bob"


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_user(username: str = "alice", user_id: str = "u-1") -> PlatformUser:
    return PlatformUser(
        username=username,
        user_id=user_id,
        description="Lahelu meme maker",
        avatar="https://cache.lahelu.com/avatar/alice.png",
        create_time=1_600_000_000_000,
    )


def make_post(post_id: str, title: str = "", create_time: int = 0, sensitive: bool = False) -> PlatformPost:
    return PlatformPost(
        post_id=post_id,
        title=title or f"Post {post_id}",
        content=[{"type": 1, "value": f"media/{post_id}.jpg"}],
        is_sensitive=sensitive,
        create_time=create_time,
    )


@pytest.fixture
def config(tmp_path) -> BridgeConfig:
    """Create test configuration."""
    return BridgeConfig(
        domain=ORIGIN,
        host="127.0.0.1",
        port=3000,
        sync_ttl_ms=300_000,
        platform={"api_url": "https://lahelu.test/api"},
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'bridge.db'}"},
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    """File-backed store in a temporary directory."""
    store = await Store.open(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    yield store
    await store.close()


@pytest.fixture
def platform_client():
    """Mock Lahelu client that knows user alice."""
    client = AsyncMock(spec=LaheluClient)
    client.get_user = AsyncMock(side_effect=lambda username: make_user(username) if username == "alice" else None)
    client.get_user_posts = AsyncMock(return_value=[])
    return client


@pytest.fixture
def identity_service(store, platform_client) -> IdentityService:
    return IdentityService(store=store, platform_client=platform_client)


@pytest.fixture
def followers(store) -> FollowerRegistry:
    return FollowerRegistry(store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def federation(identity_service) -> Federation:
    federation = Federation(ORIGIN)
    federation.set_actor_dispatcher("/users/{identifier}", identity_service.dispatch_actor)
    federation.set_key_pairs_dispatcher(identity_service.dispatch_key_pairs)
    return federation


@pytest.fixture
def ctx(federation):
    """Context as seen by a listener on alice's inbox."""
    return federation.create_context(
        url=f"{ORIGIN}/users/alice/inbox",
        parameters={"identifier": "alice"},
    )
