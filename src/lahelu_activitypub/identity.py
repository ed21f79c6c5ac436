"""Account and key provisioning for bridged Lahelu users.

Implements:
- Lazy creation of local user rows from the Lahelu API
- Lazy generation of each actor's signing key pair
- Actor documents for the actor and key pair dispatchers
"""

import asyncio
import json

import structlog

from .activitypub_types import Actor, ObjectType, PublicKey, iso_from_ms
from .federation import Context, KeyPair, export_jwk, generate_key_pair, import_jwk
from .models import User
from .platform_client import LaheluClient
from .store import Store

logger = structlog.get_logger()


class IdentityService:
    """Provisions local actors and their key material."""

    def __init__(self, store: Store, platform_client: LaheluClient):
        """Initialize identity service.

        Args:
            store: Persistent store
            platform_client: Lahelu API client used on first reference
        """
        self.store = store
        self.platform = platform_client

    async def ensure_user(self, username: str) -> User | None:
        """Get the local user row, creating it from Lahelu on first reference.

        An existing row is returned without contacting Lahelu. Every
        operation that needs a local actor goes through here first.

        Args:
            username: Lahelu username

        Returns:
            User row, or None if Lahelu does not know the account or could
            not be reached
        """
        user = await self.store.get_user(username)
        if user:
            return user

        info = await self.platform.get_user(username)
        if info is None:
            logger.info("Lahelu user not found", username=username)
            return None

        await self.store.insert_user(
            username=username,
            platform_user_id=info.user_id,
            description=info.description,
            avatar_url=info.avatar,
            created_at=info.create_time,
        )
        logger.info("Provisioned user", username=username, user_id=info.user_id)

        return await self.store.get_user(username)

    async def ensure_key_pair(self, username: str) -> KeyPair | None:
        """Get the actor's signing key pair, generating it on first use.

        Keys are generated at most once per actor and never rotated.

        Args:
            username: Local username

        Returns:
            KeyPair, or None if the user row does not exist
        """
        user = await self.store.get_user(username)
        if user is None:
            return None

        if user.public_key and user.private_key:
            return self._load_key_pair(user)

        # RSA generation is CPU-bound; keep it off the event loop
        key_pair = await asyncio.to_thread(generate_key_pair)
        stored = await self.store.set_user_keys(
            username,
            public_key=json.dumps(export_jwk(key_pair.public_key)),
            private_key=json.dumps(export_jwk(key_pair.private_key)),
        )
        if not stored:
            # A concurrent request stored its pair first
            return self._load_key_pair(await self.store.get_user(username))

        logger.info("Generated key pair", username=username)
        return key_pair

    @staticmethod
    def _load_key_pair(user: User) -> KeyPair:
        return KeyPair(
            public_key=import_jwk(json.loads(user.public_key), "public"),
            private_key=import_jwk(json.loads(user.private_key), "private"),
        )

    # === Dispatchers ===

    async def dispatch_key_pairs(self, ctx: Context, identifier: str) -> list[KeyPair]:
        key_pair = await self.ensure_key_pair(identifier)
        return [key_pair] if key_pair else []

    async def dispatch_actor(self, ctx: Context, identifier: str) -> Actor | None:
        """Build the Person document for a bridged user."""
        user = await self.ensure_user(identifier)
        if user is None:
            return None

        actor_uri = ctx.get_actor_uri(user.username)
        key_pairs = await ctx.get_actor_key_pairs(user.username)
        public_key = None
        if key_pairs:
            public_key = PublicKey(
                id=f"{actor_uri}#main-key",
                owner=actor_uri,
                public_key_pem=key_pairs[0].public_key_pem,
            )

        return Actor(
            id=actor_uri,
            type=ObjectType.PERSON,
            preferred_username=user.username,
            name=user.username,
            summary=user.description or "",
            url=actor_uri,
            inbox=ctx.get_inbox_uri(user.username),
            outbox=ctx.get_outbox_uri(user.username),
            followers=ctx.get_followers_uri(user.username),
            public_key=public_key,
            icon_url=user.avatar_url or "",
            published=iso_from_ms(user.created_at) if user.created_at else "",
        )
