"""Federation layer: dispatcher registry, key material and activity delivery.

The bridge core registers callbacks here and consumes the capabilities this
module offers:
- Actor, key pair, outbox and followers dispatchers
- Inbox listeners keyed by activity type
- Actor/inbox/outbox URI helpers and remote object lookup
- HTTP-signed delivery of activities to remote inboxes

It knows nothing about Lahelu users or posts.
"""

import asyncio
import base64
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import quote, unquote, urlparse

import aiohttp
import structlog
from aiohttp import web
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from jose import jwk
from jose.constants import ALGORITHMS

from .activitypub_types import (
    AP_ACCEPT_HEADER,
    AP_CONTENT_TYPE,
    Activity,
    ActivityType,
    Actor,
    JsonDict,
    OrderedCollection,
    normalize_id,
)

logger = structlog.get_logger()

USER_AGENT = "LaheluActivityPubBridge/1.0"


class FederationError(Exception):
    """Error during federation operations."""
    pass


# === Key Material ===

@dataclass
class KeyPair:
    """An actor's RSA signing key pair."""
    public_key: rsa.RSAPublicKey
    private_key: rsa.RSAPrivateKey

    @property
    def public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()


def generate_key_pair() -> KeyPair:
    """Generate an RSA key pair for HTTP signatures."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    return KeyPair(public_key=private_key.public_key(), private_key=private_key)


def export_jwk(key: rsa.RSAPublicKey | rsa.RSAPrivateKey) -> JsonDict:
    """Export one half of an RSA key pair as a JWK dict."""
    if isinstance(key, rsa.RSAPrivateKey):
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    else:
        pem = key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    return jwk.construct(pem, algorithm=ALGORITHMS.RS256).to_dict()


def import_jwk(data: JsonDict, kind: str) -> rsa.RSAPublicKey | rsa.RSAPrivateKey:
    """Import a JWK dict exported by ``export_jwk``.

    Args:
        data: JWK dict
        kind: "public" or "private"
    """
    pem = jwk.construct(data, algorithm=ALGORITHMS.RS256).to_pem()
    if kind == "private":
        return serialization.load_pem_private_key(pem, password=None)
    if kind == "public":
        return serialization.load_pem_public_key(pem)
    raise ValueError(f"Unknown key kind: {kind}")


# === HTTP Signatures ===

def compute_digest(body: bytes) -> str:
    """Compute SHA-256 digest of request body.

    Returns:
        Base64-encoded digest with algorithm prefix
    """
    digest = hashlib.sha256(body).digest()
    return f"SHA-256={base64.b64encode(digest).decode()}"


def create_signature_string(
    method: str,
    path: str,
    headers: dict[str, str],
    signed_headers: list[str],
) -> str:
    """Create the string to sign for HTTP signatures.

    Args:
        method: HTTP method
        path: Request path (with query string)
        headers: Request headers, lowercase names
        signed_headers: Headers to include in signature
    """
    lines = []
    for header in signed_headers:
        if header == "(request-target)":
            lines.append(f"(request-target): {method.lower()} {path}")
        else:
            lines.append(f"{header}: {headers.get(header, '')}")
    return "\n".join(lines)


def sign_request(
    private_key: rsa.RSAPrivateKey,
    key_id: str,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
) -> str:
    """Create HTTP Signature header for request.

    Args:
        private_key: Sender's RSA private key
        key_id: Public key ID (actor#main-key)
        method: HTTP method
        url: Full URL
        headers: Request headers (mutated to add Date, Digest, Host)
        body: Optional request body

    Returns:
        Signature header value
    """
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path += f"?{parsed.query}"

    if "date" not in headers and "Date" not in headers:
        headers["Date"] = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")
    if body:
        headers["Digest"] = compute_digest(body)
    headers["Host"] = parsed.netloc

    signed_headers = ["(request-target)", "host", "date"]
    if body:
        signed_headers.append("digest")

    sig_string = create_signature_string(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in headers.items()},
        signed_headers=signed_headers,
    )

    signature = private_key.sign(
        sig_string.encode(),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    sig_b64 = base64.b64encode(signature).decode()

    return (
        f'keyId="{key_id}",'
        f'algorithm="rsa-sha256",'
        f'headers="{" ".join(signed_headers)}",'
        f'signature="{sig_b64}"'
    )


# === Dispatch ===

ActorDispatcher = Callable[["Context", str], Awaitable[Actor | None]]
KeyPairsDispatcher = Callable[["Context", str], Awaitable[list[KeyPair]]]
CollectionDispatcher = Callable[["Context", str], Awaitable[list[Any]]]
InboxListener = Callable[["Context", JsonDict], Awaitable[Any]]


class Context:
    """Per-request view of the federation, handed to every dispatcher."""

    def __init__(
        self,
        federation: "Federation",
        url: str | None = None,
        parameters: dict[str, str] | None = None,
    ):
        self.federation = federation
        self.url = url
        self.parameters = parameters or {}

    def get_actor_uri(self, identifier: str) -> str:
        return self.federation.build_uri(self.federation.actor_path, identifier)

    def get_inbox_uri(self, identifier: str | None = None) -> str:
        if identifier is None:
            return f"{self.federation.origin}{self.federation.shared_inbox_path}"
        return self.federation.build_uri(self.federation.inbox_path, identifier)

    def get_outbox_uri(self, identifier: str) -> str:
        return self.federation.build_uri(self.federation.outbox_path, identifier)

    def get_followers_uri(self, identifier: str) -> str:
        return self.federation.build_uri(self.federation.followers_path, identifier)

    def parse_actor_uri(self, uri: str | None) -> str | None:
        """Return the identifier of one of our actor URIs, else None."""
        if not uri:
            return None
        prefix, _, suffix = self.federation.actor_path.partition("{identifier}")
        base = f"{self.federation.origin}{prefix}"
        if not uri.startswith(base):
            return None
        rest = uri[len(base):]
        if suffix:
            if not rest.endswith(suffix):
                return None
            rest = rest[:-len(suffix)]
        if not rest or "/" in rest:
            return None
        return unquote(rest)

    async def get_actor_key_pairs(self, identifier: str) -> list[KeyPair]:
        if self.federation.key_pairs_dispatcher is None:
            return []
        return await self.federation.key_pairs_dispatcher(self, identifier)

    async def lookup_object(self, uri: str) -> JsonDict | None:
        """Fetch a remote ActivityPub document.

        Returns:
            Decoded document, or None if it cannot be fetched
        """
        session = await self.federation.get_http_session()
        try:
            async with session.get(
                uri,
                headers={"Accept": AP_ACCEPT_HEADER, "User-Agent": USER_AGENT},
            ) as response:
                if response.status != 200:
                    logger.warning("Object lookup failed", uri=uri, status=response.status)
                    return None
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Object lookup failed", uri=uri, error=str(e))
            return None
        return data if isinstance(data, dict) else None

    async def send_activity(
        self,
        sender: str | JsonDict,
        recipient: str | JsonDict,
        activity: Activity,
    ) -> None:
        """Sign and deliver an activity to the recipient's inbox.

        Args:
            sender: Local actor identifier (or ``{"identifier": ...}``)
            recipient: Remote actor URI (or a reference object)
            activity: Activity to deliver

        Raises:
            FederationError: If delivery is impossible or rejected
        """
        identifier = normalize_id(sender)
        recipient_id = normalize_id(recipient)
        if not identifier or not recipient_id:
            raise FederationError("Sender and recipient are required")

        key_pairs = await self.get_actor_key_pairs(identifier)
        if not key_pairs:
            raise FederationError(f"Actor has no key pair for signing: {identifier}")

        remote = await self.lookup_object(recipient_id)
        if remote is None:
            raise FederationError(f"Cannot resolve recipient: {recipient_id}")
        inbox_url = normalize_id(remote.get("inbox")) or normalize_id(
            (remote.get("endpoints") or {}).get("sharedInbox")
        )
        if not inbox_url:
            raise FederationError(f"Recipient has no inbox: {recipient_id}")

        body = json.dumps(activity.to_dict()).encode()
        headers = {
            "Content-Type": AP_CONTENT_TYPE,
            "Accept": AP_ACCEPT_HEADER,
            "User-Agent": USER_AGENT,
        }
        headers["Signature"] = sign_request(
            private_key=key_pairs[0].private_key,
            key_id=f"{self.get_actor_uri(identifier)}#main-key",
            method="POST",
            url=inbox_url,
            headers=headers,
            body=body,
        )

        session = await self.federation.get_http_session()
        try:
            async with session.post(inbox_url, data=body, headers=headers) as response:
                if response.status not in (200, 201, 202, 204):
                    error = await response.text()
                    raise FederationError(f"HTTP {response.status}: {error[:100]}")
        except aiohttp.ClientError as e:
            raise FederationError(f"Delivery to {inbox_url} failed: {e}") from e

        logger.info(
            "Delivered activity",
            type=activity.type.value,
            inbox=inbox_url,
            sender=identifier,
        )


class InboxListeners:
    """Registration handle returned by ``Federation.set_inbox_listeners``."""

    def __init__(self, federation: "Federation"):
        self._federation = federation

    def on(self, activity_type: ActivityType, listener: InboxListener) -> "InboxListeners":
        self._federation.inbox_listeners[activity_type.value] = listener
        return self


class Federation:
    """Registry of dispatchers and listeners plus the HTTP routes serving them."""

    def __init__(self, origin: str):
        """Initialize federation.

        Args:
            origin: Public origin of this server (e.g., https://bridge.example)
        """
        self.origin = origin.rstrip("/")
        self.actor_path = "/users/{identifier}"
        self.inbox_path = "/users/{identifier}/inbox"
        self.shared_inbox_path = "/inbox"
        self.outbox_path = "/users/{identifier}/outbox"
        self.followers_path = "/users/{identifier}/followers"
        self.actor_dispatcher: ActorDispatcher | None = None
        self.key_pairs_dispatcher: KeyPairsDispatcher | None = None
        self.outbox_dispatcher: CollectionDispatcher | None = None
        self.followers_dispatcher: CollectionDispatcher | None = None
        self.inbox_listeners: dict[str, InboxListener] = {}
        self._http_session: aiohttp.ClientSession | None = None

    @property
    def host(self) -> str:
        return urlparse(self.origin).netloc

    async def get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()

    def build_uri(self, path: str, identifier: str) -> str:
        return f"{self.origin}{path.format(identifier=quote(identifier, safe=''))}"

    def create_context(self, url: str | None = None, parameters: dict[str, str] | None = None) -> Context:
        return Context(self, url=url, parameters=parameters)

    # === Registration ===

    def set_actor_dispatcher(self, path: str, dispatcher: ActorDispatcher) -> "Federation":
        self.actor_path = path
        self.actor_dispatcher = dispatcher
        return self

    def set_key_pairs_dispatcher(self, dispatcher: KeyPairsDispatcher) -> "Federation":
        self.key_pairs_dispatcher = dispatcher
        return self

    def set_outbox_dispatcher(self, path: str, dispatcher: CollectionDispatcher) -> "Federation":
        self.outbox_path = path
        self.outbox_dispatcher = dispatcher
        return self

    def set_followers_dispatcher(self, path: str, dispatcher: CollectionDispatcher) -> "Federation":
        self.followers_path = path
        self.followers_dispatcher = dispatcher
        return self

    def set_inbox_listeners(self, path: str, shared_path: str) -> InboxListeners:
        self.inbox_path = path
        self.shared_inbox_path = shared_path
        return InboxListeners(self)

    def register_routes(self, app: web.Application) -> None:
        """Mount the federation endpoints on an aiohttp application."""
        app.router.add_get("/.well-known/webfinger", self._handle_webfinger)
        if self.actor_dispatcher:
            app.router.add_get(self.actor_path, self._handle_actor)
        if self.outbox_dispatcher:
            app.router.add_get(self.outbox_path, self._handle_outbox)
        if self.followers_dispatcher:
            app.router.add_get(self.followers_path, self._handle_followers)
        app.router.add_post(self.inbox_path, self._handle_inbox)
        app.router.add_post(self.shared_inbox_path, self._handle_inbox)

    def _request_context(self, request: web.Request) -> Context:
        return Context(self, url=str(request.url), parameters=dict(request.match_info))

    # === Route Handlers ===

    async def _handle_actor(self, request: web.Request) -> web.Response:
        ctx = self._request_context(request)
        actor = await self.actor_dispatcher(ctx, ctx.parameters["identifier"])
        if actor is None:
            return web.json_response({"error": "Actor not found"}, status=404)
        return web.json_response(actor.to_dict(), content_type=AP_CONTENT_TYPE)

    async def _handle_outbox(self, request: web.Request) -> web.Response:
        ctx = self._request_context(request)
        identifier = ctx.parameters["identifier"]
        activities = await self.outbox_dispatcher(ctx, identifier)
        collection = OrderedCollection(
            id=ctx.get_outbox_uri(identifier),
            items=[a.to_dict() for a in activities],
        )
        return web.json_response(collection.to_dict(), content_type=AP_CONTENT_TYPE)

    async def _handle_followers(self, request: web.Request) -> web.Response:
        ctx = self._request_context(request)
        identifier = ctx.parameters["identifier"]
        actors = await self.followers_dispatcher(ctx, identifier)
        collection = OrderedCollection(id=ctx.get_followers_uri(identifier), items=list(actors))
        return web.json_response(collection.to_dict(), content_type=AP_CONTENT_TYPE)

    async def _handle_inbox(self, request: web.Request) -> web.Response:
        try:
            activity_data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "Invalid JSON"}, status=400)
        if not isinstance(activity_data, dict):
            return web.json_response({"error": "Invalid activity"}, status=400)

        activity_type = activity_data.get("type", "")
        ctx = self._request_context(request)
        logger.info(
            "Received inbox activity",
            path=request.path,
            activity_type=activity_type,
            activity_id=normalize_id(activity_data.get("id")),
        )

        # JSON-LD allows an array of types
        listener = self.inbox_listeners.get(activity_type) if isinstance(activity_type, str) else None
        if listener is None:
            logger.debug("Ignoring unsupported activity type", type=activity_type)
        else:
            await listener(ctx, activity_data)

        return web.json_response({}, status=202)

    async def _handle_webfinger(self, request: web.Request) -> web.Response:
        """Handle WebFinger discovery requests (RFC 7033)."""
        resource = request.query.get("resource", "")
        if not resource:
            return web.json_response({"error": "Missing resource parameter"}, status=400)

        ctx = self._request_context(request)
        identifier = None
        if resource.startswith("acct:"):
            acct = resource[5:].lstrip("@")
            if "@" in acct:
                local_part, domain = acct.rsplit("@", 1)
                if domain == self.host:
                    identifier = local_part
        else:
            identifier = ctx.parse_actor_uri(resource)

        actor = None
        if identifier and self.actor_dispatcher:
            actor = await self.actor_dispatcher(ctx, identifier)
        if actor is None:
            return web.json_response({"error": "Resource not found"}, status=404)

        return web.json_response(
            {
                "subject": f"acct:{identifier}@{self.host}",
                "aliases": [actor.id],
                "links": [
                    {
                        "rel": "self",
                        "type": AP_CONTENT_TYPE,
                        "href": actor.id,
                    },
                    {
                        "rel": "http://webfinger.net/rel/profile-page",
                        "type": "text/html",
                        "href": actor.url or actor.id,
                    },
                ],
            },
            content_type="application/jrd+json",
        )
