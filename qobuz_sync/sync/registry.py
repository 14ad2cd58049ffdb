"""
Playlist registry: the local mirror of the user's collections

Three partitions are mirrored: featured playlists, the user's own playlists
and the favorites list. Every change to the mirror is driven by a server
reply; local edits are sent as requests and applied only once the server has
echoed them.

Stale replies:
- playlist refreshes carry a token from a PendingTokens set; a reply whose
  token is gone (logout) is ignored
- collection fetches and mutations are stamped with the session epoch; a
  reply from before a logout or a 401 is ignored

Membership is always written as the full ordered track list. While any
refresh is outstanding the mirror may be incomplete, so membership writes are
refused instead of risking the server copy being truncated.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set

from ..core.context import SessionContext
from ..core.correlation import PendingTokens
from ..core.events import EventBus, PlaylistsChanged
from ..core.exceptions import MalformedRecord
from ..core.tasks import TaskManager
from ..qobuz.dispatcher import (
    RESOURCE_ADD_FAVORITE,
    RESOURCE_CREATE_PLAYLIST,
    RESOURCE_DELETE_FAVORITE,
    RESOURCE_DELETE_PLAYLIST,
    RESOURCE_FEATURED_PLAYLISTS,
    RESOURCE_GET_PLAYLIST,
    RESOURCE_UPDATE_PLAYLIST,
    RESOURCE_USER_FAVORITES,
    RESOURCE_USER_PLAYLISTS,
)
from ..qobuz.extractor import ResponseExtractor
from ..qobuz.models import (
    PlaylistInfo,
    PlaylistKind,
    PlaylistState,
    Track,
    extract_track_ids,
    extract_tracks,
)
from ..utils.helpers import ids_to_param, remove_first_occurrences
from ..utils.logger import get_logger

FAVORITES_ID = 0


def _favorites_playlist() -> PlaylistInfo:
    return PlaylistInfo(
        id=FAVORITES_ID,
        name="Favorites",
        kind=PlaylistKind.USER_FAVORITES,
        editable=True,
    )


class PlaylistRegistry:
    """
    Owns every PlaylistInfo

    Attributes:
        featured: Featured playlists by id
        user: User playlists (owned, followed or collaborative) by id
        favorites: The favorites list, mirrored as a pseudo playlist
        pending: Outstanding refresh tokens, payload is the playlist id
    """

    def __init__(
        self,
        context: SessionContext,
        dispatcher,
        extractor: ResponseExtractor,
        events: EventBus,
        tasks: TaskManager
    ):
        self.context = context
        self.dispatcher = dispatcher
        self.extractor = extractor
        self.events = events
        self.tasks = tasks
        self.logger = get_logger(__name__)

        self.featured: Dict[int, PlaylistInfo] = {}
        self.user: Dict[int, PlaylistInfo] = {}
        self.favorites = _favorites_playlist()
        self.pending = PendingTokens()

        self.featured_task_id = 0
        self.user_task_id = 0
        self.favorites_task_id = 0

        self._handlers: Set[asyncio.Task] = set()

    # Queries

    def get(self, playlist_id: int) -> Optional[PlaylistInfo]:
        if playlist_id == FAVORITES_ID:
            return self.favorites
        return self.user.get(playlist_id) or self.featured.get(playlist_id)

    def playlists(self, kind: Optional[PlaylistKind] = None) -> List[PlaylistInfo]:
        """Mirrored playlists, optionally restricted to one collection"""
        if kind == PlaylistKind.FEATURED:
            return list(self.featured.values())
        if kind == PlaylistKind.USER_OWNED:
            return list(self.user.values())
        if kind == PlaylistKind.USER_FAVORITES:
            return [self.favorites]
        return list(self.featured.values()) + list(self.user.values())

    def membership(self, playlist_id: int) -> Optional[List[str]]:
        playlist = self.get(playlist_id)
        return list(playlist.member_track_ids) if playlist else None

    def collection_task_ids(self) -> List[int]:
        return [self.featured_task_id, self.user_task_id, self.favorites_task_id]

    # Collection fetches

    def retrieve_user_data(self) -> None:
        """Fetch featured playlists, favorites and user playlists"""
        if not self.context.accepting():
            self.logger.warning("Not logged in to Qobuz, cannot retrieve user data")
            return
        self.retrieve_featured()
        self.retrieve_favorites()
        self.retrieve_user_playlists()

    def retrieve_featured(self) -> None:
        task_id = self.tasks.begin("Getting Qobuz featured playlists")
        self.featured_task_id = task_id
        call = self.dispatcher.issue(
            RESOURCE_FEATURED_PLAYLISTS,
            {'type': 'editor-picks', 'user_id': self.context.user_id},
            requires_auth=True
        )
        self._track(self._collection_retrieved(call, task_id, PlaylistKind.FEATURED, self.context.epoch.current))

    def retrieve_user_playlists(self) -> None:
        task_id = self.tasks.begin("Getting Qobuz user playlists")
        self.user_task_id = task_id
        call = self.dispatcher.issue(
            RESOURCE_USER_PLAYLISTS,
            {'user_id': self.context.user_id},
            requires_auth=True
        )
        self._track(self._collection_retrieved(call, task_id, PlaylistKind.USER_OWNED, self.context.epoch.current))

    async def _collection_retrieved(self, call, task_id: int, kind: PlaylistKind, epoch: int) -> None:
        result = self.extractor.extract(await call)
        try:
            if not self.context.epoch.is_live(epoch):
                self.logger.debug(f"Ignoring {kind.value} playlists from a previous session")
                return
            if not result.ok:
                self.logger.warning(f"Could not retrieve Qobuz {kind.value} playlists: {result.error}")
                return

            collection = result.get('playlists')
            items = (collection.get('items') if isinstance(collection, dict) else None) or []
            partition = {}
            for item in items:
                try:
                    playlist = PlaylistInfo.from_qobuz_data(item, kind, self.context.user_id)
                except MalformedRecord as e:
                    self.logger.debug(f"Skipping playlist record: {e}")
                    continue
                partition[playlist.id] = playlist

            if kind == PlaylistKind.FEATURED:
                self.featured = partition
            else:
                self.user = partition

            self.logger.info(f"Retrieved {len(partition)} Qobuz {kind.value} playlists")
            for playlist_id in partition:
                self.refresh(playlist_id)

            self.events.emit(PlaylistsChanged())
        finally:
            self.tasks.finish(task_id)

    def retrieve_favorites(self) -> None:
        task_id = self.tasks.begin("Getting Qobuz user favorites songs")
        self.favorites_task_id = task_id
        call = self.dispatcher.issue(
            RESOURCE_USER_FAVORITES,
            {'type': 'tracks', 'user_id': self.context.user_id},
            requires_auth=True
        )
        self._track(self._favorites_retrieved(call, task_id, self.context.epoch.current))

    async def _favorites_retrieved(self, call, task_id: int, epoch: int) -> None:
        result = self.extractor.extract(await call)
        try:
            if not self.context.epoch.is_live(epoch):
                return
            if not result.ok:
                self.logger.warning(f"Could not retrieve Qobuz favorites: {result.error}")
                return

            self.favorites.member_track_ids = extract_track_ids(result.get('tracks'))
            self.favorites.tracks = extract_tracks(result.get('tracks'))
            self.favorites.state = PlaylistState.POPULATED
            self.events.emit(PlaylistsChanged(playlist_id=FAVORITES_ID))
        finally:
            self.tasks.finish(task_id)

    # Refresh

    def refresh(self, playlist_id: int) -> int:
        """
        Re-fetch one playlist's tracks

        Returns:
            Refresh token, or 0 if nothing was issued
        """
        playlist = self.get(playlist_id)
        if playlist is None or playlist_id == FAVORITES_ID:
            return 0
        if not self.context.is_logged_in():
            return 0

        was_populated = playlist.state == PlaylistState.POPULATED
        shown = playlist.tracks
        token = self.pending.issue(playlist_id)
        # Shown empty until the reply; member_track_ids stays the reconciled baseline
        playlist.state = PlaylistState.POPULATING
        playlist.tracks = []

        call = self.dispatcher.issue(
            RESOURCE_GET_PLAYLIST,
            {'extra': 'tracks', 'playlist_id': playlist_id},
            requires_auth=True
        )
        self._track(self._refresh_finished(call, token, playlist_id, was_populated, shown))
        return token

    async def _refresh_finished(
        self, call, token: int, playlist_id: int, was_populated: bool, shown: List[Track]
    ) -> None:
        result = self.extractor.extract(await call)

        if not self.pending.consume(token):
            self.logger.debug(f"Ignoring cancelled refresh of playlist {playlist_id}")
            return

        playlist = self.get(playlist_id)
        if playlist is None:
            return

        if result.ok:
            playlist.member_track_ids = extract_track_ids(result.get('tracks'))
            playlist.tracks = extract_tracks(result.get('tracks'))
            playlist.state = PlaylistState.POPULATED
            playlist.apply_echo(result.data, self.context.user_id)
        else:
            # Keep the last reconciled membership, unless another refresh already landed
            if playlist.state == PlaylistState.POPULATING:
                playlist.state = PlaylistState.POPULATED if was_populated else PlaylistState.UNKNOWN
            if not playlist.tracks:
                playlist.tracks = shown
            self.logger.warning(f"Could not refresh Qobuz playlist {playlist_id}: {result.error}")

        self.events.emit(PlaylistsChanged(playlist_id=playlist_id))

    # Playlist mutations

    def _editable_user_playlist(self, playlist_id: int, action: str) -> Optional[PlaylistInfo]:
        if not self.context.accepting():
            self.logger.warning(f"Not logged in to Qobuz, cannot {action}")
            return None
        playlist = self.user.get(playlist_id)
        if playlist is None:
            self.logger.warning(f"Cannot {action}: unknown playlist {playlist_id}")
            return None
        if not playlist.editable:
            self.logger.warning(f"Cannot {action}: playlist {playlist_id} is read-only")
            return None
        return playlist

    def create_playlist(self, name: str) -> Optional[asyncio.Task]:
        """
        Create a user playlist

        The playlist is added to the mirror from the server echo, with the
        name the server reports.
        """
        if not name:
            return None
        if not self.context.accepting():
            self.logger.warning("Not logged in to Qobuz, cannot create a playlist")
            return None

        task_id = self.tasks.begin("Creating Qobuz playlist")
        call = self.dispatcher.issue(RESOURCE_CREATE_PLAYLIST, {'name': name}, requires_auth=True)
        return self._track(self._playlist_created(call, task_id, self.context.epoch.current))

    async def _playlist_created(self, call, task_id: int, epoch: int) -> None:
        result = self.extractor.extract(await call)
        self.tasks.finish(task_id)
        if not self.context.epoch.is_live(epoch):
            return
        if not result.ok or result.get('id') is None:
            self.logger.warning("Qobuz create playlist failed")
            return

        try:
            playlist = PlaylistInfo.from_qobuz_data(result.data, PlaylistKind.USER_OWNED, self.context.user_id)
        except MalformedRecord as e:
            self.logger.warning(f"Qobuz create playlist returned an invalid playlist: {e}")
            return

        playlist.state = PlaylistState.POPULATED
        self.user[playlist.id] = playlist
        self.logger.console_info(f"Created playlist '{playlist.name}' ({playlist.id})")
        self.events.emit(PlaylistsChanged(playlist_id=playlist.id))

    def rename_playlist(self, playlist_id: int, name: str) -> Optional[asyncio.Task]:
        if not name:
            return None
        if self._editable_user_playlist(playlist_id, "rename playlist") is None:
            return None

        task_id = self.tasks.begin("Renaming Qobuz playlist")
        call = self.dispatcher.issue(
            RESOURCE_UPDATE_PLAYLIST,
            {'name': name, 'playlist_id': playlist_id},
            requires_auth=True
        )
        return self._track(self._playlist_renamed(call, task_id, playlist_id, self.context.epoch.current))

    async def _playlist_renamed(self, call, task_id: int, playlist_id: int, epoch: int) -> None:
        result = self.extractor.extract(await call)
        self.tasks.finish(task_id)
        if not self.context.epoch.is_live(epoch):
            return
        if not result.ok or result.get('id') is None or result.get('name') is None:
            self.logger.warning("Qobuz rename playlist failed")
            return

        playlist = self.user.get(playlist_id)
        if playlist is None:
            return
        playlist.apply_echo(result.data, self.context.user_id)
        self.events.emit(PlaylistsChanged(playlist_id=playlist_id))

    def delete_playlist(self, playlist_id: int) -> Optional[asyncio.Task]:
        if self._editable_user_playlist(playlist_id, "delete playlist") is None:
            return None

        task_id = self.tasks.begin("Deleting Qobuz playlist")
        call = self.dispatcher.issue(RESOURCE_DELETE_PLAYLIST, {'playlist_id': playlist_id}, requires_auth=True)
        return self._track(self._playlist_deleted(call, task_id, playlist_id, self.context.epoch.current))

    async def _playlist_deleted(self, call, task_id: int, playlist_id: int, epoch: int) -> None:
        result = self.extractor.extract(await call)
        self.tasks.finish(task_id)
        if not self.context.epoch.is_live(epoch):
            return
        if not result.succeeded:
            self.logger.warning("Qobuz delete playlist failed")
            return

        if self.user.pop(playlist_id, None) is not None:
            self.events.emit(PlaylistsChanged(playlist_id=playlist_id))

    # Membership

    def set_membership(self, playlist_id: int, track_ids: Sequence[Any]) -> Optional[asyncio.Task]:
        """
        Replace a playlist's tracks with the given ordered list

        Refused while any refresh is outstanding. The mirror is not touched
        here: on success the playlist is refreshed from the server.
        """
        if self.pending:
            self.logger.info("Qobuz playlists are still loading, membership update skipped")
            return None
        if self._editable_user_playlist(playlist_id, "update playlist") is None:
            return None

        task_id = self.tasks.begin("Updating Qobuz playlist")
        call = self.dispatcher.issue(
            RESOURCE_UPDATE_PLAYLIST,
            {'playlist_id': playlist_id, 'track_ids': ids_to_param(track_ids)},
            requires_auth=True
        )
        return self._track(self._membership_set(call, task_id, playlist_id, self.context.epoch.current))

    async def _membership_set(self, call, task_id: int, playlist_id: int, epoch: int) -> None:
        result = self.extractor.extract(await call)
        self.tasks.finish(task_id)
        if not self.context.epoch.is_live(epoch) or not self.context.accepting():
            return
        # The server echoes the updated playlist; anything else is a failure
        if not result.ok or str(result.get('id')) != str(playlist_id):
            self.logger.warning(f"Qobuz update of playlist {playlist_id} failed")
            return

        self.refresh(playlist_id)

    def add_track(self, playlist_id: int, track_id: Any) -> Optional[asyncio.Task]:
        playlist = self.user.get(playlist_id)
        if playlist is None:
            self.logger.warning(f"Cannot add to unknown playlist {playlist_id}")
            return None
        return self.set_membership(playlist_id, playlist.member_track_ids + [str(track_id)])

    def remove_tracks(self, playlist_id: int, track_ids: Sequence[Any]) -> Optional[asyncio.Task]:
        """Remove one occurrence of each given track id"""
        playlist = self.user.get(playlist_id)
        if playlist is None or not track_ids:
            return None
        remaining = remove_first_occurrences(playlist.member_track_ids, [str(t) for t in track_ids])
        return self.set_membership(playlist_id, remaining)

    # Favorites

    def add_favorite(self, track_id: Any) -> Optional[asyncio.Task]:
        return self._edit_favorites(RESOURCE_ADD_FAVORITE, [track_id], "Adding song to favorites")

    def remove_favorites(self, track_ids: Sequence[Any]) -> Optional[asyncio.Task]:
        return self._edit_favorites(RESOURCE_DELETE_FAVORITE, track_ids, "Removing songs from favorites")

    def _edit_favorites(self, resource: str, track_ids: Sequence[Any], label: str) -> Optional[asyncio.Task]:
        if not track_ids:
            return None
        if not self.context.accepting():
            self.logger.warning("Not logged in to Qobuz, cannot edit favorites")
            return None

        task_id = self.tasks.begin(label)
        call = self.dispatcher.issue(resource, {'track_ids': ids_to_param(track_ids)}, requires_auth=True)
        return self._track(self._favorites_edited(call, task_id, resource, self.context.epoch.current))

    async def _favorites_edited(self, call, task_id: int, resource: str, epoch: int) -> None:
        result = self.extractor.extract(await call)
        self.tasks.finish(task_id)
        if not self.context.epoch.is_live(epoch) or not self.context.accepting():
            return
        if not result.succeeded:
            self.logger.warning(f"Qobuz {resource} failed")
            return

        self.retrieve_favorites()

    # Lifecycle

    def clear(self) -> None:
        """Forget every mirrored playlist and outstanding refresh"""
        self.pending.cancel_all()
        self.featured = {}
        self.user = {}
        self.favorites = _favorites_playlist()

    def _track(self, coro) -> asyncio.Task:
        handler = asyncio.get_running_loop().create_task(coro)
        self._handlers.add(handler)
        handler.add_done_callback(self._handlers.discard)
        return handler

    async def wait_handlers(self) -> None:
        """Wait for every reply handler scheduled so far"""
        while self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)
