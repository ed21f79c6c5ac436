"""Tests for ActivityPub types."""

from lahelu_activitypub.activitypub_types import (
    AP_CONTEXT,
    AS_PUBLIC,
    Activity,
    ActivityType,
    Actor,
    Note,
    OrderedCollection,
    PublicKey,
    iso_from_ms,
    normalize_id,
)


class TestPublicKey:
    """Tests for PublicKey dataclass."""

    def test_to_dict(self):
        key = PublicKey(
            id="https://bridge.example/users/alice#main-key",
            owner="https://bridge.example/users/alice",
            public_key_pem="-----BEGIN PUBLIC KEY-----\n...",
        )
        result = key.to_dict()

        assert result["id"] == "https://bridge.example/users/alice#main-key"
        assert result["owner"] == "https://bridge.example/users/alice"
        assert result["publicKeyPem"].startswith("-----BEGIN PUBLIC KEY-----")


class TestActor:
    """Tests for Actor dataclass."""

    def test_basic_actor_to_dict(self):
        actor = Actor(
            id="https://bridge.example/users/alice",
            preferred_username="alice",
            inbox="https://bridge.example/users/alice/inbox",
            outbox="https://bridge.example/users/alice/outbox",
        )
        result = actor.to_dict()

        assert result["@context"] == AP_CONTEXT
        assert result["type"] == "Person"
        assert result["name"] == "alice"
        assert result["url"] == "https://bridge.example/users/alice"
        assert "publicKey" not in result
        assert "icon" not in result
        assert "followers" not in result

    def test_actor_with_icon_and_published(self):
        actor = Actor(
            id="https://bridge.example/users/alice",
            preferred_username="alice",
            icon_url="https://cache.lahelu.com/a.png",
            published="2020-09-13T12:26:40.000Z",
        )
        result = actor.to_dict()

        assert result["icon"] == {"type": "Image", "url": "https://cache.lahelu.com/a.png"}
        assert result["published"] == "2020-09-13T12:26:40.000Z"


class TestNote:
    """Tests for Note dataclass."""

    def test_to_dict(self):
        note = Note(
            id="https://bridge.example/users/alice/posts/p1",
            content="Hello",
            attributed_to="https://bridge.example/users/alice",
            to=[AS_PUBLIC],
            sensitive=True,
        )
        result = note.to_dict()

        assert result["type"] == "Note"
        assert result["url"] == result["id"]
        assert result["attributedTo"] == "https://bridge.example/users/alice"
        assert result["to"] == [AS_PUBLIC]
        assert result["sensitive"] is True


class TestActivity:
    """Tests for Activity dataclass."""

    def test_accept_activity_to_dict(self):
        activity = Activity(
            id="https://bridge.example/users/alice/accepts/1",
            type=ActivityType.ACCEPT,
            actor="https://bridge.example/users/alice",
            object="https://remote.example/follows/9",
            to=["https://remote.example/users/bob"],
        )
        result = activity.to_dict()

        assert result["type"] == "Accept"
        assert result["object"] == "https://remote.example/follows/9"
        assert result["to"] == ["https://remote.example/users/bob"]
        assert "published" not in result


class TestOrderedCollection:
    """Tests for OrderedCollection dataclass."""

    def test_collection_to_dict(self):
        collection = OrderedCollection(
            id="https://bridge.example/users/alice/followers",
            items=["https://a.example/users/x", "https://b.example/users/y"],
        )
        result = collection.to_dict()

        assert result["type"] == "OrderedCollection"
        assert result["totalItems"] == 2
        assert result["orderedItems"][0] == "https://a.example/users/x"

    def test_empty_collection(self):
        result = OrderedCollection(id="https://bridge.example/users/alice/outbox").to_dict()
        assert result["totalItems"] == 0
        assert result["orderedItems"] == []


class TestHelperFunctions:
    """Tests for helper functions."""

    def test_iso_from_ms(self):
        assert iso_from_ms(0) == "1970-01-01T00:00:00.000Z"
        assert iso_from_ms(1_600_000_000_123) == "2020-09-13T12:26:40.123Z"

    def test_normalize_id_string(self):
        assert normalize_id("https://remote.example/users/bob") == "https://remote.example/users/bob"
        assert normalize_id("  alice ") == "alice"

    def test_normalize_id_reference_objects(self):
        assert normalize_id({"id": "https://a.example/x"}) == "https://a.example/x"
        assert normalize_id({"href": "https://a.example/y"}) == "https://a.example/y"
        assert normalize_id({"identifier": "alice"}) == "alice"

    def test_normalize_id_invalid(self):
        assert normalize_id(None) is None
        assert normalize_id("") is None
        assert normalize_id("   ") is None
        assert normalize_id(42) is None
        assert normalize_id({"type": "Person"}) is None
        assert normalize_id({"id": None}) is None
