"""Main entry point for Lahelu ActivityPub Bridge server.

Implements an aiohttp-based HTTP server with:
- Federation endpoints (actor, outbox, followers, inboxes, WebFinger)
- NodeInfo discovery (/.well-known/nodeinfo, /nodeinfo/2.0)
- Liveness endpoint (/heartbeat)
"""

import asyncio
import logging
import signal
import sys
import time
from pathlib import Path

import structlog
from aiohttp import web
from pydantic import ValidationError
from sqlalchemy.engine import make_url

from . import __version__
from .activitypub_types import ActivityType
from .config import BridgeConfig, load_config
from .federation import Federation
from .followers import FollowerRegistry
from .identity import IdentityService
from .inbox import InboxHandler
from .outbox import OutboxService
from .platform_client import LaheluClient
from .store import Store
from .sync import ContentSynchronizer

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

NODEINFO_SCHEMA = "http://nodeinfo.diaspora.software/ns/schema/2.0"
SOFTWARE_NAME = "lahelu-activitypub-bridge"

# Taken at import, which happens once at process start
PROCESS_STARTED_AT = time.monotonic()


class BridgeServer:
    """Lahelu to Fediverse bridge server."""

    def __init__(self, config: BridgeConfig):
        """Initialize server.

        Args:
            config: Bridge configuration
        """
        self.config = config
        self.app = web.Application()
        self.store: Store | None = None
        self.platform_client: LaheluClient | None = None
        self.identity_service: IdentityService | None = None
        self.followers: FollowerRegistry | None = None
        self.synchronizer: ContentSynchronizer | None = None
        self.outbox_service: OutboxService | None = None
        self.inbox_handler: InboxHandler | None = None
        self.federation: Federation | None = None

    async def setup(self) -> None:
        """Set up server components."""
        _ensure_sqlite_dir(self.config.database.url)
        self.store = await Store.open(self.config.database.url)

        self.platform_client = LaheluClient(
            api_url=self.config.platform.api_url,
            timeout_seconds=self.config.platform.timeout_seconds,
        )
        self.identity_service = IdentityService(
            store=self.store,
            platform_client=self.platform_client,
        )
        self.followers = FollowerRegistry(self.store)
        self.synchronizer = ContentSynchronizer(
            store=self.store,
            identity_service=self.identity_service,
            followers=self.followers,
            platform_client=self.platform_client,
            sync_ttl_ms=self.config.sync_ttl_ms,
        )
        self.outbox_service = OutboxService(
            store=self.store,
            followers=self.followers,
            synchronizer=self.synchronizer,
        )
        self.inbox_handler = InboxHandler(
            identity_service=self.identity_service,
            followers=self.followers,
        )

        self.federation = build_federation(
            self.config.domain,
            self.identity_service,
            self.followers,
            self.outbox_service,
            self.inbox_handler,
        )

        self._setup_routes()

        self.app["config"] = self.config
        self.app["store"] = self.store

        logger.info("Server setup complete", domain=self.config.domain)

    async def cleanup(self) -> None:
        """Clean up server resources."""
        if self.platform_client:
            await self.platform_client.close()
        if self.federation:
            await self.federation.close()
        if self.store:
            await self.store.close()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get("/.well-known/nodeinfo", handle_nodeinfo_wellknown)
        self.app.router.add_get("/nodeinfo/2.0", handle_nodeinfo)
        self.app.router.add_get("/heartbeat", handle_heartbeat)
        self.federation.register_routes(self.app)

    async def run(self) -> None:
        """Run the server."""
        await self.setup()

        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, self.config.host, self.config.port)
        await site.start()

        logger.info(
            "Lahelu bridge running",
            host=self.config.host,
            port=self.config.port,
        )

        # Wait for shutdown signal
        stop_event = asyncio.Event()

        def signal_handler():
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

        await stop_event.wait()

        logger.info("Shutting down...")
        await runner.cleanup()
        await self.cleanup()


def build_federation(
    origin: str,
    identity_service: IdentityService,
    followers: FollowerRegistry,
    outbox_service: OutboxService,
    inbox_handler: InboxHandler,
) -> Federation:
    """Register the bridge's dispatchers and inbox listeners."""
    federation = Federation(origin)
    federation.set_actor_dispatcher("/users/{identifier}", identity_service.dispatch_actor)
    federation.set_key_pairs_dispatcher(identity_service.dispatch_key_pairs)
    federation.set_outbox_dispatcher("/users/{identifier}/outbox", outbox_service.dispatch_outbox)
    federation.set_followers_dispatcher("/users/{identifier}/followers", followers.dispatch_followers)
    (
        federation.set_inbox_listeners("/users/{identifier}/inbox", "/inbox")
        .on(ActivityType.FOLLOW, inbox_handler.on_follow)
        .on(ActivityType.UNDO, inbox_handler.on_undo)
    )
    return federation


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


# === Route Handlers ===

async def handle_nodeinfo_wellknown(request: web.Request) -> web.Response:
    """Handle NodeInfo well-known endpoint."""
    config = request.app["config"]
    return web.json_response({
        "links": [
            {
                "rel": NODEINFO_SCHEMA,
                "href": f"{config.domain}/nodeinfo/2.0",
            }
        ]
    })


async def handle_nodeinfo(request: web.Request) -> web.Response:
    """Handle NodeInfo endpoint."""
    user_count = await request.app["store"].count_users()
    return web.json_response({
        "version": "2.0",
        "software": {
            "name": SOFTWARE_NAME,
            "version": __version__,
        },
        "protocols": ["activitypub"],
        "services": {"inbound": [], "outbound": []},
        "usage": {
            "users": {"total": user_count},
        },
        "openRegistrations": False,
        "metadata": {},
    })


async def handle_heartbeat(request: web.Request) -> web.Response:
    """Liveness endpoint."""
    return web.json_response({
        "status": "ok",
        "uptime": time.monotonic() - PROCESS_STARTED_AT,
    })


def main() -> None:
    """Main entry point."""
    # Configure standard logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
    )

    try:
        config = load_config()
    except ValidationError as e:
        logger.error("Invalid configuration, DOMAIN env required", error=str(e))
        sys.exit(1)

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(log_level)

    server = BridgeServer(config)

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
