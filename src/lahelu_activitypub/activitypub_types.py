"""ActivityPub protocol types and utilities for the Lahelu bridge.

References:
- ActivityPub spec: https://www.w3.org/TR/activitypub/
- ActivityStreams 2.0: https://www.w3.org/TR/activitystreams-core/
- Mastodon API: https://docs.joinmastodon.org/spec/activitypub/
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeAlias

# JSON-LD contexts for ActivityPub
ACTIVITY_STREAMS_CONTEXT = "https://www.w3.org/ns/activitystreams"
SECURITY_CONTEXT = "https://w3id.org/security/v1"

# Standard ActivityPub context
AP_CONTEXT: list[str | dict] = [
    ACTIVITY_STREAMS_CONTEXT,
    SECURITY_CONTEXT,
]

# Content types
AP_CONTENT_TYPE = "application/activity+json"
AP_ACCEPT_HEADER = 'application/activity+json, application/ld+json; profile="https://www.w3.org/ns/activitystreams"'

# Public addressing
AS_PUBLIC = "https://www.w3.org/ns/activitystreams#Public"

# Type aliases
JsonDict: TypeAlias = dict[str, Any]


class ActivityType(str, Enum):
    """ActivityPub activity types handled by the bridge."""
    CREATE = "Create"
    FOLLOW = "Follow"
    ACCEPT = "Accept"
    UNDO = "Undo"


class ObjectType(str, Enum):
    """ActivityPub object types."""
    PERSON = "Person"
    NOTE = "Note"
    IMAGE = "Image"
    ORDERED_COLLECTION = "OrderedCollection"


@dataclass
class PublicKey:
    """RSA public key for HTTP signatures."""
    id: str  # e.g., https://bridge.example/users/alice#main-key
    owner: str  # Actor ID
    public_key_pem: str

    def to_dict(self) -> JsonDict:
        """Convert to ActivityPub JSON-LD format."""
        return {
            "id": self.id,
            "owner": self.owner,
            "publicKeyPem": self.public_key_pem,
        }


@dataclass
class Actor:
    """ActivityPub Actor representing a bridged Lahelu user."""
    id: str  # https://bridge.example/users/alice
    type: ObjectType = ObjectType.PERSON
    preferred_username: str = ""
    name: str = ""
    summary: str = ""
    url: str = ""
    inbox: str = ""
    outbox: str = ""
    followers: str = ""
    public_key: PublicKey | None = None
    icon_url: str = ""  # Avatar
    published: str = ""  # ISO timestamp

    def to_dict(self) -> JsonDict:
        """Convert to ActivityPub JSON-LD format."""
        actor = {
            "@context": AP_CONTEXT,
            "id": self.id,
            "type": self.type.value,
            "preferredUsername": self.preferred_username,
            "name": self.name or self.preferred_username,
            "summary": self.summary,
            "url": self.url or self.id,
            "inbox": self.inbox,
            "outbox": self.outbox,
            "manuallyApprovesFollowers": False,
            "discoverable": True,
        }

        if self.followers:
            actor["followers"] = self.followers

        if self.public_key:
            actor["publicKey"] = self.public_key.to_dict()

        if self.icon_url:
            actor["icon"] = {"type": ObjectType.IMAGE.value, "url": self.icon_url}

        if self.published:
            actor["published"] = self.published

        return actor


@dataclass
class Note:
    """ActivityPub Note object (post/status)."""
    id: str  # https://bridge.example/users/alice/posts/123
    content: str
    attributed_to: str  # Actor ID
    published: str = ""  # ISO timestamp
    to: list[str] = field(default_factory=list)
    sensitive: bool = False

    def to_dict(self) -> JsonDict:
        """Convert to ActivityPub JSON-LD format."""
        return {
            "id": self.id,
            "type": ObjectType.NOTE.value,
            "content": self.content,
            "attributedTo": self.attributed_to,
            "published": self.published,
            "to": self.to,
            "url": self.id,
            "sensitive": self.sensitive,
        }


@dataclass
class Activity:
    """ActivityPub Activity wrapper."""
    id: str
    type: ActivityType
    actor: str  # Actor ID performing the activity
    object: str | JsonDict  # Target object (ID or inline object)
    published: str = ""
    to: list[str] = field(default_factory=list)

    def to_dict(self) -> JsonDict:
        """Convert to ActivityPub JSON-LD format."""
        activity = {
            "@context": AP_CONTEXT,
            "id": self.id,
            "type": self.type.value,
            "actor": self.actor,
            "object": self.object,
        }

        if self.published:
            activity["published"] = self.published
        if self.to:
            activity["to"] = self.to

        return activity


@dataclass
class OrderedCollection:
    """ActivityPub OrderedCollection for outbox/followers."""
    id: str
    items: list[str | JsonDict] = field(default_factory=list)

    def to_dict(self) -> JsonDict:
        """Convert to ActivityPub JSON-LD format."""
        return {
            "@context": AP_CONTEXT,
            "id": self.id,
            "type": ObjectType.ORDERED_COLLECTION.value,
            "totalItems": len(self.items),
            "orderedItems": self.items,
        }


def iso_from_ms(ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC timestamp."""
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_id(value: Any) -> str | None:
    """Reduce an identifier of any accepted shape to a single string.

    Accepts a bare string or a reference object carrying ``id``, ``href`` or
    ``identifier``. Returns None for anything that does not resolve to a
    non-empty string.
    """
    if isinstance(value, dict):
        for key in ("id", "href", "identifier"):
            if key in value:
                return normalize_id(value[key])
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None
