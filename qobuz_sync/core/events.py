"""
Event bus for the sync engine using pyee.EventEmitter.

Listeners are called synchronously, in subscription order, on the thread that
emits: the event loop thread. An event is therefore fully delivered before
the emitting handler continues.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, ClassVar, List, Optional

from pyee.base import EventEmitter

if TYPE_CHECKING:
    from ..qobuz.models import Track


class EventTypes(Enum):
    """Event types that can be emitted on the event bus."""

    # Federated search events
    RESULTS_AVAILABLE = "search.results_available"
    SEARCH_FINISHED = "search.finished"

    # Interactive search events
    SEARCH_RESULTS_CHANGED = "search.results_changed"

    # Mirror events
    PLAYLISTS_CHANGED = "playlists.changed"

    # Session events
    LOGGED_IN = "session.logged_in"
    LOGGED_OUT = "session.logged_out"
    LOGIN_FAILED = "session.login_failed"

    # Any reply that was not a success
    REPLY_ERROR = "reply.error"


class LoginFailure(Enum):
    """Why a login attempt failed"""
    CREDENTIALS = "credentials"
    NOT_ENTITLED = "not_entitled"
    SERVICE = "service"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class ResultsAvailable:
    caller_id: int
    tracks: List["Track"] = field(default_factory=list)
    event_type: ClassVar[EventTypes] = EventTypes.RESULTS_AVAILABLE


@dataclass(frozen=True)
class SearchFinished:
    caller_id: int
    event_type: ClassVar[EventTypes] = EventTypes.SEARCH_FINISHED


@dataclass(frozen=True)
class SearchResultsChanged:
    query: str
    tracks: List["Track"] = field(default_factory=list)
    event_type: ClassVar[EventTypes] = EventTypes.SEARCH_RESULTS_CHANGED


@dataclass(frozen=True)
class PlaylistsChanged:
    playlist_id: Optional[int] = None
    event_type: ClassVar[EventTypes] = EventTypes.PLAYLISTS_CHANGED


@dataclass(frozen=True)
class LoggedIn:
    user_id: str
    event_type: ClassVar[EventTypes] = EventTypes.LOGGED_IN


@dataclass(frozen=True)
class LoggedOut:
    event_type: ClassVar[EventTypes] = EventTypes.LOGGED_OUT


@dataclass(frozen=True)
class LoginFailed:
    reason: LoginFailure
    message: str = ""
    event_type: ClassVar[EventTypes] = EventTypes.LOGIN_FAILED


@dataclass(frozen=True)
class ReplyError:
    http_status: int
    resource: str = ""
    event_type: ClassVar[EventTypes] = EventTypes.REPLY_ERROR


class EventBus:
    """
    Typed wrapper around pyee's synchronous EventEmitter

    Events are the dataclasses above; each carries its EventTypes member as
    a class attribute, so emit() only needs the event instance.
    """

    def __init__(self):
        self._emitter = EventEmitter()

    def emit(self, event) -> None:
        """
        Deliver an event to every listener of its type

        Args:
            event: One of the event dataclasses of this module
        """
        event_type = getattr(event, 'event_type', None)
        if not isinstance(event_type, EventTypes):
            raise ValueError(f"Not an event: {event!r}")
        self._emitter.emit(event_type.value, event)

    def on(self, event_type: EventTypes, callback: Callable) -> None:
        """
        Subscribe to an event type

        Args:
            event_type: The type of event to subscribe to
            callback: Called with the event instance
        """
        if not isinstance(event_type, EventTypes):
            raise ValueError(f"event_type must be an EventTypes enum, got {type(event_type)}")
        if not callable(callback):
            raise ValueError(f"callback must be callable, got {type(callback)}")
        self._emitter.on(event_type.value, callback)

    def remove_listener(self, event_type: EventTypes, callback: Callable) -> None:
        self._emitter.remove_listener(event_type.value, callback)

    def remove_all_listeners(self, event_type: Optional[EventTypes] = None) -> None:
        if event_type is not None:
            self._emitter.remove_all_listeners(event_type.value)
        else:
            self._emitter.remove_all_listeners()
