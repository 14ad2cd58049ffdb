"""
Session context shared by every request-issuing component

A single SessionContext is created by the service and handed to the
dispatcher, the session manager, the search coordinator and the playlist
registry. It is the only place the auth token, user id and quality preference
live.

Lifecycle:
    open()        -> logged in, a new session epoch starts
    invalidate()  -> token dropped at once (401), epoch made stale
    begin_close() -> logout drain in progress, new actions are refused
    close()       -> every field cleared
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .correlation import GenerationCounter
from ..qobuz.models import Quality


@dataclass
class Session:
    token: Optional[str] = None
    user_id: Optional[str] = None
    quality: Quality = Quality.NONE
    user_mail: str = ""
    lossless: bool = False


class SessionContext:
    """Owned session state with explicit open/close"""

    def __init__(self):
        self.session = Session()
        self.closing = False
        # Stamped on every mutating request; replies from an older epoch
        # (before a logout or a 401) are dropped
        self.epoch = GenerationCounter()
        self.epoch.issue()

    @property
    def token(self) -> Optional[str]:
        return self.session.token

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id

    @property
    def quality(self) -> Quality:
        return self.session.quality

    @quality.setter
    def quality(self, value: Quality) -> None:
        self.session.quality = Quality(value)

    def is_logged_in(self) -> bool:
        return bool(self.session.token)

    def accepting(self) -> bool:
        """Whether new user actions may start"""
        return self.is_logged_in() and not self.closing

    def open(
        self,
        token: str,
        user_id: str,
        quality: Optional[Quality] = None,
        user_mail: str = "",
        lossless: bool = False
    ) -> None:
        if not token:
            raise ValueError("Cannot open a session without a token")
        if self.closing:
            raise RuntimeError("Cannot open a session while the previous one is closing")
        self.session.token = token
        self.session.user_id = user_id
        if quality is not None:
            self.session.quality = Quality(quality)
        self.session.user_mail = user_mail
        self.session.lossless = lossless
        self.epoch.issue()

    def invalidate(self) -> None:
        """Drop the token immediately; in-flight replies become stale"""
        self.session.token = None
        self.epoch.cancel_all()

    def begin_close(self) -> None:
        self.closing = True

    def close(self) -> None:
        self.session = Session()
        self.closing = False
        self.epoch.cancel_all()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self.session)
        data['quality'] = int(self.session.quality)
        return data
