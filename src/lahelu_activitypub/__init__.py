"""Lahelu ActivityPub/Fediverse Bridge.

This package exposes Lahelu users as ActivityPub actors, republishes their
latest posts through their outboxes and answers Follow/Undo from Mastodon and
other Fediverse servers.

Key components:
- activitypub_types: ActivityPub/ActivityStreams protocol types
- config: Pydantic configuration management
- models: SQLAlchemy database models
- store: Persistence primitives shared by all services
- platform_client: HTTP client for the Lahelu API
- identity: User and key pair provisioning
- followers: Follower registry
- sync: TTL-gated post synchronization
- outbox: Create(Note) outbox materialization
- inbox: Follow/Undo handshake
- federation: Dispatcher registry, HTTP signatures and delivery
- main: HTTP server entry point
"""

from .activitypub_types import (
    Activity,
    ActivityType,
    Actor,
    Note,
    ObjectType,
    OrderedCollection,
    PublicKey,
    normalize_id,
)
from .config import BridgeConfig, DatabaseConfig, PlatformConfig, load_config
from .federation import Context, Federation, FederationError, KeyPair
from .followers import FollowerRegistry
from .identity import IdentityService
from .inbox import Dropped, Failed, Handled, HandleResult, InboxHandler
from .models import Comment, Follower, Post, User, init_db
from .outbox import OutboxService
from .platform_client import LaheluClient, PlatformApiError, PlatformPost, PlatformUser
from .store import Store
from .sync import ContentSynchronizer, SyncOutcome

__version__ = "0.1.0"

__all__ = [
    # Types
    "Activity",
    "ActivityType",
    "Actor",
    "Note",
    "ObjectType",
    "OrderedCollection",
    "PublicKey",
    "normalize_id",
    # Config
    "BridgeConfig",
    "DatabaseConfig",
    "PlatformConfig",
    "load_config",
    # Federation
    "Context",
    "Federation",
    "FederationError",
    "KeyPair",
    # Client
    "LaheluClient",
    "PlatformApiError",
    "PlatformPost",
    "PlatformUser",
    # Models
    "Comment",
    "Follower",
    "Post",
    "User",
    "init_db",
    "Store",
    # Services
    "ContentSynchronizer",
    "FollowerRegistry",
    "IdentityService",
    "InboxHandler",
    "OutboxService",
    "SyncOutcome",
    # Handler results
    "Dropped",
    "Failed",
    "Handled",
    "HandleResult",
]
