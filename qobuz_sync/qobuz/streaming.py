"""
Signed streaming URL resolution

The one blocking call in the engine: a player asks for a playable URL at
play time and waits for the answer. It runs outside the event loop (the CLI
uses run_in_executor), so it must not touch loop-owned state directly: a 401
is handed back to the loop with call_soon_threadsafe.

Signature (md5 hex) over, in this order:
    resource path with slashes removed ("trackgetFileUrl")
    name+value of each parameter, names in alphabetical order
    request timestamp (unix seconds)
    application secret
"""

import asyncio
import hashlib
import time
from typing import Callable, List, Optional, Tuple

import requests

from ..config.settings import Settings, get_settings
from ..core.context import SessionContext
from ..utils.logger import get_logger, log_performance
from .dispatcher import RESOURCE_FILE_URL, build_headers, build_url

HTTP_UNAUTHORIZED = 401


def stream_parameters(track_id: str, quality: int) -> List[Tuple[str, str]]:
    """Parameters of a getFileUrl call, already in alphabetical order"""
    return [
        ('format_id', str(int(quality))),
        ('intent', 'stream'),
        ('track_id', str(track_id)),
    ]


def sign_request(resource: str, parameters: List[Tuple[str, str]], timestamp: str, secret: str) -> str:
    """
    Compute the request signature

    Args:
        resource: Resource path, e.g. "track/getFileUrl"
        parameters: (name, value) pairs; sorted by name before signing
        timestamp: Unix seconds as a string
        secret: Application secret

    Returns:
        Lowercase md5 hex digest
    """
    payload = resource.replace('/', '')
    for name, value in sorted(parameters):
        payload += f"{name}{value}"
    payload += timestamp
    payload += secret
    return hashlib.md5(payload.encode('utf-8')).hexdigest()


class StreamResolver:
    """
    Resolves a track id to a playable URL

    Attributes:
        context: Session context (token and quality are read at call time)
        settings: Application settings (endpoint, app id and secret)
    """

    def __init__(
        self,
        context: SessionContext,
        settings: Optional[Settings] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.context = context
        self.settings = settings or get_settings()
        self.on_unauthorized = on_unauthorized
        self.loop = loop
        self.logger = get_logger(__name__)

    @log_performance
    def resolve_stream_url(self, track_id: str, timestamp: Optional[int] = None) -> Optional[str]:
        """
        Blocking call to obtain the stream URL of a track

        Args:
            track_id: Qobuz track id
            timestamp: Request time in unix seconds (defaults to now)

        Returns:
            The URL, or None on any failure
        """
        request_ts = str(int(timestamp if timestamp is not None else time.time()))
        parameters = stream_parameters(track_id, self.context.quality)
        signature = sign_request(RESOURCE_FILE_URL, parameters, request_ts, self.settings.qobuz.app_secret)

        query = dict(parameters)
        query['request_ts'] = request_ts
        query['request_sig'] = signature

        try:
            response = requests.get(
                build_url(self.settings.qobuz.base_url, RESOURCE_FILE_URL),
                params=query,
                headers=build_headers(self.settings, self.context.token, requires_auth=True),
                timeout=self.settings.network.request_timeout
            )
        except requests.RequestException as e:
            self.logger.error(f"Failed to resolve stream URL for track {track_id}: {e}")
            return None

        if response.status_code == HTTP_UNAUTHORIZED:
            self.logger.error(f"Stream URL request for track {track_id} was rejected (401)")
            self._report_unauthorized()
            return None

        if not 200 <= response.status_code < 300:
            self.logger.error(f"Stream URL request for track {track_id} failed ({response.status_code})")
            return None

        try:
            data = response.json()
        except ValueError as e:
            self.logger.error(f"Invalid stream URL reply for track {track_id}: {e}")
            return None

        url = data.get('url') if isinstance(data, dict) else None
        if not url:
            self.logger.warning(f"No stream URL for track {track_id}")
            return None
        return str(url)

    def _report_unauthorized(self) -> None:
        if not self.on_unauthorized:
            return
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.on_unauthorized)
        else:
            self.on_unauthorized()
