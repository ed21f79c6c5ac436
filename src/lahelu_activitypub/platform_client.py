"""Read-only HTTP client for the Lahelu user and post endpoints."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import structlog

logger = structlog.get_logger()

USER_AGENT = "LaheluActivityPubBridge/1.0"


@dataclass
class PlatformUser:
    """Lahelu account information."""
    username: str
    user_id: str
    description: str = ""
    avatar: str = ""
    create_time: int = 0  # epoch ms


@dataclass
class PlatformPost:
    """A post from a Lahelu user's feed."""
    post_id: str
    title: str
    content: list[Any] = field(default_factory=list)  # opaque content blocks
    is_sensitive: bool = False
    create_time: int = 0  # epoch ms


class PlatformApiError(Exception):
    """Error from the Lahelu API."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Lahelu API Error {status}: {message}")


def parse_user(data: dict[str, Any]) -> PlatformUser | None:
    """Parse the ``userInfo`` payload of a user lookup.

    Returns:
        PlatformUser, or None if the payload carries no user
    """
    info = data.get("userInfo")
    if not isinstance(info, dict) or not info.get("username"):
        return None
    return PlatformUser(
        username=info["username"],
        user_id=str(info.get("userId", "")),
        description=info.get("description") or "",
        avatar=info.get("avatar") or "",
        create_time=int(info.get("createTime") or 0),
    )


def parse_posts(data: dict[str, Any]) -> list[PlatformPost]:
    """Parse the ``postInfos`` payload of a user feed page."""
    posts = []
    for info in data.get("postInfos") or []:
        if not isinstance(info, dict) or not info.get("postId"):
            continue
        posts.append(PlatformPost(
            post_id=str(info["postId"]),
            title=info.get("title") or "",
            content=info.get("content") or [],
            is_sensitive=bool(info.get("isSensitive")),
            create_time=int(info.get("createTime") or 0),
        ))
    return posts


class LaheluClient:
    """Client for the Lahelu HTTP API.

    Failures never propagate: a failed call is reported as "no data" so the
    next natural trigger retries it.
    """

    def __init__(self, api_url: str, timeout_seconds: float = 30.0):
        """Initialize Lahelu client.

        Args:
            api_url: Root URL of the API (e.g., https://lahelu.com/api)
            timeout_seconds: Total timeout per request
        """
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        """GET an API path and decode the JSON body.

        Raises:
            PlatformApiError: On transport failure or non-success status
        """
        session = await self._get_session()
        try:
            async with session.get(f"{self.api_url}{path}", params=params) as response:
                if response.status != 200:
                    raise PlatformApiError(response.status, await response.text())
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PlatformApiError(0, str(e)) from e
        if not isinstance(data, dict):
            raise PlatformApiError(200, "Unexpected response body")
        return data

    async def get_user(self, username: str) -> PlatformUser | None:
        """Look up an account by username.

        Returns:
            PlatformUser, or None if the account does not exist or the API
            is unavailable
        """
        try:
            data = await self._get_json("/user/get-username", {"username": username})
        except PlatformApiError as e:
            logger.warning("User lookup failed", username=username, error=str(e))
            return None
        try:
            return parse_user(data)
        except (TypeError, ValueError) as e:
            logger.warning("Malformed user payload", username=username, error=str(e))
            return None

    async def get_user_posts(
        self,
        user_id: str,
        cursor: int = 1,
        newest: bool = True,
    ) -> list[PlatformPost] | None:
        """Fetch one page of a user's posts.

        Args:
            user_id: Lahelu user id
            cursor: Page cursor (1 is the first page)
            newest: Order newest first

        Returns:
            List of posts, or None if the fetch failed
        """
        params = {
            "userId": user_id,
            "isNewest": "true" if newest else "false",
            "cursor": str(cursor),
        }
        try:
            data = await self._get_json("/post/get-user-posts", params)
        except PlatformApiError as e:
            logger.warning("Post fetch failed", user_id=user_id, error=str(e))
            return None
        try:
            return parse_posts(data)
        except (TypeError, ValueError) as e:
            logger.warning("Malformed post payload", user_id=user_id, error=str(e))
            return None
