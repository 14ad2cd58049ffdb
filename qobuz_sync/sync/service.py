"""
Qobuz service facade

Wires the session context, dispatcher, extractor, session manager, search
coordinator and playlist registry together and exposes the operations and
queries a front end uses. Everything runs on one asyncio event loop.

Logout is a drain: new actions are refused, the search task, the three
collection tasks and every outstanding refresh are awaited, and only then is
the session and mirror state cleared. A 401 on any reply drops the token at
once and starts the same drain in the background.
"""

import asyncio
from typing import List, Optional, Sequence

from ..config.credentials import CredentialStore, get_credential_store
from ..config.settings import Settings, get_settings
from ..core.context import SessionContext
from ..core.events import EventBus, EventTypes, LoggedOut, ReplyError
from ..core.exceptions import QobuzSyncError
from ..core.tasks import TaskManager
from ..qobuz.dispatcher import RequestDispatcher
from ..qobuz.extractor import ResponseExtractor
from ..qobuz.models import PlaylistInfo, PlaylistKind, Quality, Track
from ..qobuz.session import SessionManager
from ..qobuz.streaming import StreamResolver
from ..utils.logger import get_logger
from .registry import PlaylistRegistry
from .search import SearchCoordinator


class QobuzService:
    """
    Entry point of the sync engine

    Args:
        settings: Application settings (defaults to the global settings)
        store: Credential store (defaults to the global store)
        dispatcher: Request dispatcher; built on the service's context when omitted
        tasks: Task table shared with the front end
        events: Event bus listeners subscribe to
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[CredentialStore] = None,
        dispatcher=None,
        tasks: Optional[TaskManager] = None,
        events: Optional[EventBus] = None
    ):
        self.logger = get_logger(__name__)
        self.settings = settings or get_settings()
        self.store = store or get_credential_store()
        self.context = SessionContext()
        self.events = events or EventBus()
        self.tasks = tasks or TaskManager()
        self.dispatcher = dispatcher or RequestDispatcher(self.context, self.settings)
        self.extractor = ResponseExtractor(on_unauthorized=self.invalidate, on_error=self._reply_error)

        self.session = SessionManager(self.context, self.dispatcher, self.extractor, self.events, self.store)
        self.search_coordinator = SearchCoordinator(
            self.context, self.dispatcher, self.extractor, self.events, self.tasks, self.settings
        )
        self.registry = PlaylistRegistry(self.context, self.dispatcher, self.extractor, self.events, self.tasks)
        self.streams = StreamResolver(self.context, self.settings, on_unauthorized=self.invalidate)

        self._drain: Optional[asyncio.Task] = None
        self.events.on(EventTypes.LOGGED_IN, self._on_logged_in)

    # Session

    def bootstrap(self) -> bool:
        """Restore a persisted session and, if there is one, fetch user data"""
        if self.context.is_logged_in():
            return True
        if self.logging_out():
            return False
        if not self.session.bootstrap():
            return False
        self.registry.retrieve_user_data()
        return True

    def connect(self, username: str, password: str) -> Optional[asyncio.Task]:
        if self.logging_out():
            self.logger.warning("Logout in progress, login refused")
            return None
        return self.session.connect(username, password)

    def logging_out(self) -> bool:
        return self._drain is not None and not self._drain.done()

    def _on_logged_in(self, event) -> None:
        self.registry.retrieve_user_data()

    def set_quality(self, quality: Quality) -> None:
        self.session.set_quality(quality)

    def account_label(self) -> str:
        return self.session.account_label()

    def logout(self) -> asyncio.Task:
        """
        Start the shutdown drain, or return the one already running

        Returns:
            Task that completes once the state has been cleared
        """
        if self._drain is None or self._drain.done():
            # Refuse new actions and logins before the drain gets to run
            self.context.begin_close()
            self._drain = asyncio.get_running_loop().create_task(self._shutdown_drain())
        return self._drain

    async def _shutdown_drain(self) -> None:
        task_id = self.tasks.begin("Logging out of Qobuz")
        try:
            self.search_coordinator.stop()
            await self.tasks.wait_finished(
                self.search_coordinator.search_task_id,
                *self.registry.collection_task_ids()
            )
            await self.registry.pending.wait_empty()

            self.search_coordinator.cancel_simple_searches()
            self.search_coordinator.clear_results()
            self.registry.clear()
            self.context.close()
            self.store.clear()
        finally:
            self.tasks.finish(task_id)

        self.logger.console_info("Logged out of Qobuz")
        self.events.emit(LoggedOut())

    def invalidate(self) -> None:
        """
        The server rejected our token

        The token is dropped synchronously so no further authenticated call
        carries it; the drain runs in the background because the reply that
        triggered this may belong to a task the drain waits for.
        """
        if not self.context.is_logged_in():
            return
        self.logger.warning("Qobuz session expired, logging out")
        self.context.invalidate()
        self.logout()

    def _reply_error(self, error: QobuzSyncError, resource: str) -> None:
        self.events.emit(ReplyError(http_status=getattr(error, 'http_status', 0), resource=resource))

    # Search

    def search(self, text: str, now: bool = False) -> None:
        self.search_coordinator.search(text, now=now)

    def simple_search(self, text: str, caller_id: Optional[int] = None) -> int:
        return self.search_coordinator.simple_search(text, caller_id)

    # Playlists and favorites

    def refresh(self, playlist_id: int) -> int:
        return self.registry.refresh(playlist_id)

    def create_playlist(self, name: str) -> Optional[asyncio.Task]:
        return self.registry.create_playlist(name)

    def rename_playlist(self, playlist_id: int, name: str) -> Optional[asyncio.Task]:
        return self.registry.rename_playlist(playlist_id, name)

    def delete_playlist(self, playlist_id: int) -> Optional[asyncio.Task]:
        return self.registry.delete_playlist(playlist_id)

    def set_membership(self, playlist_id: int, track_ids: Sequence) -> Optional[asyncio.Task]:
        return self.registry.set_membership(playlist_id, track_ids)

    def add_to_playlist(self, playlist_id: int, track_id) -> Optional[asyncio.Task]:
        return self.registry.add_track(playlist_id, track_id)

    def remove_from_playlist(self, playlist_id: int, track_ids: Sequence) -> Optional[asyncio.Task]:
        return self.registry.remove_tracks(playlist_id, track_ids)

    def add_favorite(self, track_id) -> Optional[asyncio.Task]:
        return self.registry.add_favorite(track_id)

    def remove_favorites(self, track_ids: Sequence) -> Optional[asyncio.Task]:
        return self.registry.remove_favorites(track_ids)

    # Streaming

    async def resolve_stream_url(self, track_id: str) -> Optional[str]:
        """Run the blocking stream URL request off the loop"""
        loop = asyncio.get_running_loop()
        self.streams.loop = loop
        return await loop.run_in_executor(None, self.streams.resolve_stream_url, track_id)

    # Queries

    def is_logged_in(self) -> bool:
        return self.context.is_logged_in()

    def current_quality(self) -> Quality:
        return self.context.quality

    def list_playlists(self, kind: Optional[PlaylistKind] = None) -> List[PlaylistInfo]:
        return self.registry.playlists(kind)

    def playlist_membership(self, playlist_id: int) -> Optional[List[str]]:
        return self.registry.membership(playlist_id)

    def favorites(self) -> List[Track]:
        return list(self.registry.favorites.tracks)

    def search_results(self) -> List[Track]:
        return list(self.search_coordinator.results)

    # Lifecycle

    async def settle(self) -> None:
        """Wait until no task is active, no refresh is pending and every reply has been handled"""
        while True:
            await self.tasks.wait_idle()
            await self.registry.pending.wait_empty()
            await self.registry.wait_handlers()
            await self.search_coordinator.wait_handlers()
            if not self.tasks.active_tasks() and not self.registry.pending:
                return

    async def close(self) -> None:
        close = getattr(self.dispatcher, 'close', None)
        if close is not None:
            await close()
