"""Inbound Follow / Undo(Follow) handshake.

Per (local actor, remote actor) pair the only states are "not following" and
"following": a Follow is recorded and answered with an Accept immediately, an
Undo of that Follow removes it. Inbound events are best effort. Every handler
returns a ``HandleResult`` and never raises.
"""

import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlparse

import structlog

from .activitypub_types import Activity, ActivityType, JsonDict, normalize_id
from .federation import Context
from .followers import FollowerRegistry
from .identity import IdentityService

logger = structlog.get_logger()


@dataclass(frozen=True)
class Handled:
    """The activity changed state (and an Accept was sent, for Follow)."""
    pass


@dataclass(frozen=True)
class Dropped:
    """The activity was ignored."""
    reason: str


@dataclass(frozen=True)
class Failed:
    """Processing raised; the error was logged and swallowed."""
    error: Exception


HandleResult = Handled | Dropped | Failed


def username_from_path(url: str | None) -> str | None:
    """Extract ``name`` from a ``/users/{name}/...`` request URL."""
    if not url:
        return None
    parts = urlparse(url).path.split("/")
    if len(parts) > 2 and parts[1] == "users" and parts[2]:
        return unquote(parts[2])
    return None


def resolve_username(ctx: Context, target: Any = None) -> str | None:
    """Find the local actor an inbound activity is addressed to.

    Tries the route parameter, then the request path, then ``target`` when
    it is one of our actor URIs (shared inbox deliveries).
    """
    return (
        normalize_id(ctx.parameters.get("identifier"))
        or username_from_path(ctx.url)
        or ctx.parse_actor_uri(normalize_id(target))
    )


class InboxHandler:
    """Handles Follow and Undo activities delivered to bridged users."""

    def __init__(self, identity_service: IdentityService, followers: FollowerRegistry):
        self.identity = identity_service
        self.followers = followers

    async def on_follow(self, ctx: Context, follow: JsonDict) -> HandleResult:
        """Record the follower and send an Accept back."""
        try:
            return await self._follow(ctx, follow)
        except Exception as e:
            logger.exception("Error handling Follow", error=str(e))
            return Failed(e)

    async def on_undo(self, ctx: Context, undo: JsonDict) -> HandleResult:
        """Remove the follower when a Follow is undone."""
        try:
            return await self._undo(ctx, undo)
        except Exception as e:
            logger.exception("Error handling Undo", error=str(e))
            return Failed(e)

    async def _follow(self, ctx: Context, follow: JsonDict) -> HandleResult:
        username = resolve_username(ctx, follow.get("object"))
        if not username:
            return self._drop("Follow", "unresolvable local actor")

        actor_id = normalize_id(follow.get("actor"))
        if not actor_id:
            return self._drop("Follow", "missing actor", username=username)

        if await self.identity.ensure_user(username) is None:
            return self._drop("Follow", "unknown local actor", username=username)

        logger.info("Follow received", username=username, actor=actor_id)
        await self.followers.record_follow(username, actor_id)

        follow_id = normalize_id(follow.get("id"))
        if not follow_id:
            logger.error("Follow has no id, cannot send Accept", username=username, actor=actor_id)
            return Dropped("missing follow id")

        actor_uri = ctx.get_actor_uri(username)
        accept = Activity(
            id=f"{actor_uri}/accepts/{uuid.uuid4()}",
            type=ActivityType.ACCEPT,
            actor=actor_uri,
            object=follow_id,
            to=[actor_id],
        )
        await ctx.send_activity(username, actor_id, accept)

        logger.info("Accept sent", username=username, actor=actor_id)
        return Handled()

    async def _undo(self, ctx: Context, undo: JsonDict) -> HandleResult:
        obj = undo.get("object")
        username = resolve_username(ctx, obj.get("object") if isinstance(obj, dict) else None)
        if not username:
            return self._drop("Undo", "unresolvable local actor")

        if not isinstance(obj, dict):
            object_id = normalize_id(obj)
            obj = await ctx.lookup_object(object_id) if object_id else None
            if obj is None:
                return self._drop("Undo", "unresolvable object", username=username)

        if obj.get("type") != ActivityType.FOLLOW.value:
            return self._drop("Undo", f"unsupported undo: {obj.get('type')}", username=username)

        actor_id = normalize_id(undo.get("actor"))
        if not actor_id:
            return self._drop("Undo", "missing actor", username=username)

        await self.followers.remove_follow(username, actor_id)
        return Handled()

    @staticmethod
    def _drop(activity_type: str, reason: str, **context: Any) -> Dropped:
        logger.info("Dropped inbound activity", activity_type=activity_type, reason=reason, **context)
        return Dropped(reason)
