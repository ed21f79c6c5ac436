"""Outbox materialization: stored posts as Create(Note) activities."""

from .activitypub_types import AS_PUBLIC, Activity, ActivityType, Note, iso_from_ms
from .federation import Context
from .followers import FollowerRegistry
from .models import Post
from .store import Store
from .sync import ContentSynchronizer


def post_to_activity(ctx: Context, username: str, post: Post) -> Activity:
    """Map a stored post to a public Create activity wrapping a Note."""
    actor_uri = ctx.get_actor_uri(username)
    note_id = f"{actor_uri}/posts/{post.post_id}"
    published = iso_from_ms(post.created_at)

    note = Note(
        id=note_id,
        content=post.title,
        attributed_to=actor_uri,
        published=published,
        to=[AS_PUBLIC],
        sensitive=bool(post.sensitive),
    )

    return Activity(
        id=f"{note_id}/activity",
        type=ActivityType.CREATE,
        actor=actor_uri,
        object=note.to_dict(),
        published=published,
        to=[AS_PUBLIC],
    )


class OutboxService:
    """Builds a bridged user's outbox, newest post first."""

    def __init__(
        self,
        store: Store,
        followers: FollowerRegistry,
        synchronizer: ContentSynchronizer,
    ):
        self.store = store
        self.followers = followers
        self.synchronizer = synchronizer

    async def list_activities(self, ctx: Context, username: str) -> list[Activity]:
        """Return the user's Create activities.

        An actor nobody follows gets an empty outbox and no sync, even if
        posts were stored earlier.
        """
        if not await self.followers.has_followers(username):
            return []

        await self.synchronizer.sync_posts(username)

        posts = await self.store.list_posts(username)
        return [post_to_activity(ctx, username, post) for post in posts]

    async def dispatch_outbox(self, ctx: Context, identifier: str) -> list[Activity]:
        return await self.list_activities(ctx, identifier)
