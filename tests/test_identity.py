"""Tests for account and key provisioning."""

import json
import threading

import pytest

from lahelu_activitypub.federation import export_jwk

from conftest import ORIGIN


class TestEnsureUser:
    """Tests for IdentityService.ensure_user."""

    @pytest.mark.asyncio
    async def test_creates_user_on_first_reference(self, identity_service, platform_client):
        user = await identity_service.ensure_user("alice")

        assert user.username == "alice"
        assert user.platform_user_id == "u-1"
        assert user.description == "Lahelu meme maker"
        assert user.last_post_sync_at == 0
        assert user.last_comment_sync_at == 0
        platform_client.get_user.assert_awaited_once_with("alice")

    @pytest.mark.asyncio
    async def test_second_call_is_pure_read(self, identity_service, platform_client, store):
        first = await identity_service.ensure_user("alice")
        second = await identity_service.ensure_user("alice")

        assert first.username == second.username
        assert platform_client.get_user.await_count == 1
        assert await store.count_users() == 1

    @pytest.mark.asyncio
    async def test_unknown_user_creates_nothing(self, identity_service, store):
        assert await identity_service.ensure_user("nobody") is None
        assert await store.get_user("nobody") is None

    @pytest.mark.asyncio
    async def test_unknown_user_retried_on_next_reference(self, identity_service, platform_client):
        await identity_service.ensure_user("nobody")
        await identity_service.ensure_user("nobody")

        assert platform_client.get_user.await_count == 2


class TestEnsureKeyPair:
    """Tests for IdentityService.ensure_key_pair."""

    @pytest.mark.asyncio
    async def test_missing_user(self, identity_service):
        assert await identity_service.ensure_key_pair("alice") is None

    @pytest.mark.asyncio
    async def test_generates_and_persists(self, identity_service, store):
        await identity_service.ensure_user("alice")
        key_pair = await identity_service.ensure_key_pair("alice")

        user = await store.get_user("alice")
        assert json.loads(user.public_key) == export_jwk(key_pair.public_key)
        assert json.loads(user.private_key) == export_jwk(key_pair.private_key)
        assert json.loads(user.public_key)["kty"] == "RSA"
        assert "d" in json.loads(user.private_key)

    @pytest.mark.asyncio
    async def test_key_material_stable(self, identity_service, store):
        await identity_service.ensure_user("alice")
        first = await identity_service.ensure_key_pair("alice")
        stored = (await store.get_user("alice")).private_key
        second = await identity_service.ensure_key_pair("alice")

        assert first.public_key_pem == second.public_key_pem
        assert export_jwk(first.private_key) == export_jwk(second.private_key)
        assert (await store.get_user("alice")).private_key == stored

    @pytest.mark.asyncio
    async def test_generation_happens_once(self, identity_service, monkeypatch):
        from lahelu_activitypub import identity

        calls = []
        real = identity.generate_key_pair

        def counting():
            calls.append(1)
            return real()

        monkeypatch.setattr(identity, "generate_key_pair", counting)
        await identity_service.ensure_user("alice")
        await identity_service.ensure_key_pair("alice")
        await identity_service.ensure_key_pair("alice")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_generation_runs_off_event_loop_thread(self, identity_service, monkeypatch):
        from lahelu_activitypub import identity

        threads = []
        real = identity.generate_key_pair

        def recording():
            threads.append(threading.get_ident())
            return real()

        monkeypatch.setattr(identity, "generate_key_pair", recording)
        await identity_service.ensure_user("alice")
        await identity_service.ensure_key_pair("alice")

        assert threads and threads[0] != threading.get_ident()


class TestDispatchActor:
    """Tests for the actor dispatcher."""

    @pytest.mark.asyncio
    async def test_actor_document(self, identity_service, ctx):
        actor = await identity_service.dispatch_actor(ctx, "alice")
        data = actor.to_dict()

        assert data["id"] == f"{ORIGIN}/users/alice"
        assert data["type"] == "Person"
        assert data["preferredUsername"] == "alice"
        assert data["summary"] == "Lahelu meme maker"
        assert data["inbox"] == f"{ORIGIN}/users/alice/inbox"
        assert data["outbox"] == f"{ORIGIN}/users/alice/outbox"
        assert data["icon"]["url"] == "https://cache.lahelu.com/avatar/alice.png"
        assert data["publicKey"]["id"] == f"{ORIGIN}/users/alice#main-key"
        assert data["publicKey"]["owner"] == f"{ORIGIN}/users/alice"
        assert "BEGIN PUBLIC KEY" in data["publicKey"]["publicKeyPem"]
        assert data["published"].startswith("2020-09-13")

    @pytest.mark.asyncio
    async def test_unknown_actor(self, identity_service, ctx):
        assert await identity_service.dispatch_actor(ctx, "nobody") is None

    @pytest.mark.asyncio
    async def test_dispatch_key_pairs_unknown(self, identity_service, ctx):
        assert await identity_service.dispatch_key_pairs(ctx, "nobody") == []
