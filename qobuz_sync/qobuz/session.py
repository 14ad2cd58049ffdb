"""
Session manager: login, persisted-credential bootstrap, quality preference

The session manager is the only writer of the SessionContext fields during
login. Logout is not here: clearing the session is the last step of the
service's shutdown drain.
"""

import asyncio
from typing import Any, Dict, Optional

from ..config.credentials import CredentialStore
from ..core.context import SessionContext
from ..core.events import EventBus, LoggedIn, LoginFailed, LoginFailure
from ..core.exceptions import AuthExpired, NotEntitled, TransportFailure
from ..utils.logger import get_logger
from .dispatcher import RESOURCE_LOGIN
from .extractor import ResponseExtractor
from .models import Quality


def _as_map(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


class SessionManager:
    """
    Owns the login lifecycle

    Attributes:
        context: Shared session context
        dispatcher: Request dispatcher
        extractor: Response extractor
        events: Event bus LoggedIn / LoginFailed are emitted on
        store: Credential store the session is persisted to
    """

    def __init__(
        self,
        context: SessionContext,
        dispatcher,
        extractor: ResponseExtractor,
        events: EventBus,
        store: CredentialStore
    ):
        self.context = context
        self.dispatcher = dispatcher
        self.extractor = extractor
        self.events = events
        self.store = store
        self.logger = get_logger(__name__)

    def bootstrap(self) -> bool:
        """
        Restore a persisted session if no session is open

        Returns:
            True if a session is open afterwards
        """
        if self.context.is_logged_in():
            return True
        if self.context.closing:
            return False

        stored = self.store.load()
        if not stored:
            return False

        self.context.open(
            token=stored['token'],
            user_id=str(stored['user_id']),
            quality=Quality.from_value(stored.get('quality')),
            user_mail=stored.get('user_mail', ""),
            lossless=bool(stored.get('lossless', False)),
        )
        self.logger.info(f"Restored Qobuz session for user {self.context.user_id}")
        return True

    def connect(self, username: str, password: str) -> 'Optional[asyncio.Task[bool]]':
        """
        Start a login

        Args:
            username: Account user name or e-mail
            password: Account password

        Returns:
            Task resolving to True on success, or None if a session is
            already open or still closing
        """
        if self.context.is_logged_in():
            self.logger.warning("Already logged in to Qobuz, logout first")
            return None
        if self.context.closing:
            self.logger.warning("Logout in progress, login refused")
            return None
        if not username or not password:
            raise ValueError("Username and password are required")

        return asyncio.get_running_loop().create_task(self._connect(username, password))

    async def _connect(self, username: str, password: str) -> bool:
        reply = await self.dispatcher.issue(RESOURCE_LOGIN, {'password': password, 'username': username})
        result = self.extractor.extract(reply)

        if self.context.closing:
            self.logger.warning("Logout started while logging in, login discarded")
            self.events.emit(LoginFailed(reason=LoginFailure.SERVICE, message="Logout in progress"))
            return False

        if not result.ok:
            if isinstance(result.error, AuthExpired):
                reason = LoginFailure.CREDENTIALS
            elif isinstance(result.error, TransportFailure):
                reason = LoginFailure.TRANSPORT
            else:
                reason = LoginFailure.SERVICE
            self.logger.console_info(f"Qobuz login failed: {result.error}")
            self.events.emit(LoginFailed(reason=reason, message=str(result.error)))
            return False

        token = result.get('user_auth_token')
        if not token:
            self.logger.error("Qobuz login reply without user_auth_token")
            self.events.emit(LoginFailed(reason=LoginFailure.SERVICE, message="No token in login reply"))
            return False

        user = _as_map(result.get('user'))
        parameters = _as_map(_as_map(user.get('credential')).get('parameters'))
        lossy_streaming = bool(parameters.get('lossy_streaming'))
        lossless_streaming = bool(parameters.get('lossless_streaming'))

        # Without lossy streaming the account can only play extracts
        if not lossy_streaming:
            error = NotEntitled(
                "This account has no Qobuz streaming subscription",
                details={'user_id': user.get('id')}
            )
            self.logger.warning(str(error))
            self.store.clear()
            self.events.emit(LoginFailed(reason=LoginFailure.NOT_ENTITLED, message=str(error)))
            return False

        self.context.open(
            token=str(token),
            user_id=str(user.get('id', "")),
            quality=self.context.quality,
            user_mail=str(user.get('email') or ""),
            lossless=lossless_streaming,
        )
        self.store.save(self.context.to_dict())

        self.logger.console_info(f"Logged in to Qobuz as {self.account_label()}")
        self.events.emit(LoggedIn(user_id=self.context.user_id))
        return True

    def set_quality(self, quality: Quality) -> None:
        """
        Change the streaming quality preference

        Allowed whether or not a session is open; persisted with the session
        when there is one.
        """
        quality = Quality(quality)
        if quality == Quality.LOSSLESS and self.context.is_logged_in() and not self.context.session.lossless:
            self.logger.warning("Lossless quality selected but this account cannot stream lossless")
        self.context.quality = quality
        if self.context.is_logged_in():
            self.store.update(quality=int(quality))

    def account_label(self) -> str:
        tier = "Qobuz Hi-Fi" if self.context.session.lossless else "Qobuz Premium"
        who = self.context.session.user_mail or self.context.user_id or "unknown"
        return f"{who} ({tier})"
