"""
Request dispatcher for the Qobuz JSON API

Builds and issues one authenticated GET call per logical operation. issue()
never blocks: it schedules the call on the running event loop and returns the
asyncio.Task at once. The task resolves to a RawResponse when the service
answered (whatever the status) or to a TransportFailure when it did not; it
never raises for network errors.

There is no retry here. Outgoing calls go through an asyncio-throttle
Throttler so bursts (one refresh per playlist after login) stay within the
configured request rate.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Set, Union

import aiohttp
from asyncio_throttle import Throttler

from ..config.settings import Settings, get_settings
from ..core.context import SessionContext
from ..core.exceptions import TransportFailure
from ..utils.logger import get_logger
from .models import RawResponse

# Resource paths, relative to the API base URL
RESOURCE_LOGIN = "user/login"
RESOURCE_USER_PLAYLISTS = "playlist/getUserPlaylists"
RESOURCE_FEATURED_PLAYLISTS = "playlist/getFeatured"
RESOURCE_GET_PLAYLIST = "playlist/get"
RESOURCE_CREATE_PLAYLIST = "playlist/create"
RESOURCE_UPDATE_PLAYLIST = "playlist/update"
RESOURCE_DELETE_PLAYLIST = "playlist/delete"
RESOURCE_USER_FAVORITES = "favorite/getUserFavorites"
RESOURCE_ADD_FAVORITE = "favorite/create"
RESOURCE_DELETE_FAVORITE = "favorite/delete"
RESOURCE_SEARCH = "catalog/search"
RESOURCE_FILE_URL = "track/getFileUrl"

HEADER_APP_ID = "X-App-Id"
HEADER_AUTH_TOKEN = "X-User-Auth-Token"

DispatchOutcome = Union[RawResponse, TransportFailure]


def build_url(base_url: str, resource: str) -> str:
    return f"{base_url.rstrip('/')}/{resource.lstrip('/')}"


def build_headers(settings: Settings, token: Optional[str], requires_auth: bool) -> Dict[str, str]:
    """
    Headers for one call

    The application id is always sent; the user token only when the call
    needs it and a session is open.
    """
    headers = {
        HEADER_APP_ID: settings.qobuz.app_id,
        "Accept": "application/json",
        "User-Agent": settings.qobuz.user_agent,
    }
    if requires_auth and token:
        headers[HEADER_AUTH_TOKEN] = token
    return headers


class RequestDispatcher:
    """
    Issues calls against the fixed API base URL

    Attributes:
        context: Session context the auth token is read from at issue time
        settings: Application settings (endpoint, app id, timeouts, rate)
    """

    def __init__(
        self,
        context: SessionContext,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.context = context
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self._session = session
        self._session_owner = session is None
        self._throttler = Throttler(
            rate_limit=self.settings.network.rate_limit,
            period=self.settings.network.rate_period
        )
        self._in_flight: Set[asyncio.Task] = set()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.network.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._session_owner = True
        return self._session

    def issue(self, resource: str, params: Mapping[str, Any], requires_auth: bool = False) -> 'asyncio.Task[DispatchOutcome]':
        """
        Issue one call without waiting for it

        The token is captured now: a call issued before a logout still carries
        the token it was issued with.

        Args:
            resource: Resource path (one of the RESOURCE_* constants)
            params: Query parameters; values are sent as strings
            requires_auth: Attach the user token header

        Returns:
            Task resolving to RawResponse or TransportFailure
        """
        url = build_url(self.settings.qobuz.base_url, resource)
        headers = build_headers(self.settings, self.context.token, requires_auth)
        query = {key: str(value) for key, value in params.items()}

        self.logger.debug(f"Request {resource} {sorted(query)}")

        task = asyncio.get_running_loop().create_task(self._perform(resource, url, query, headers))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _perform(self, resource: str, url: str, query: Dict[str, str], headers: Dict[str, str]) -> DispatchOutcome:
        try:
            session = await self._ensure_session()
            async with self._throttler:
                async with session.get(url, params=query, headers=headers) as response:
                    body = await response.read()
                    return RawResponse(
                        resource=resource,
                        status=response.status,
                        body=body,
                        headers=dict(response.headers),
                    )
        except asyncio.TimeoutError:
            self.logger.warning(f"Request {resource} timed out")
            return TransportFailure(f"{resource} timed out", details={'resource': resource})
        except aiohttp.ClientError as e:
            self.logger.warning(f"Request {resource} failed: {e}")
            return TransportFailure(f"{resource} failed: {e}", details={'resource': resource})

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def close(self) -> None:
        """Wait for outstanding calls, then close the HTTP session if we own it"""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        if self._session_owner and self._session and not self._session.closed:
            await self._session.close()
