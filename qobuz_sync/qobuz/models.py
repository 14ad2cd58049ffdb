"""
Data models for Qobuz entities and request results

This module defines the domain shapes the sync engine works with and the
mapping from raw decoded JSON records to those shapes.

Entity Categories:

1. **Catalog entities**: Track, built only through Track.from_qobuz_data().
   A record that is not streamable or is malformed never produces a Track:
   the mapper raises MalformedRecord and batch helpers drop the record.

2. **Mirror entities**: PlaylistInfo, owned exclusively by the playlist
   registry and keyed by playlist id. Its member_track_ids reflect the last
   reply the registry reconciled, never a local guess.

3. **Request plumbing**: RawResponse (what the dispatcher produced),
   ApiResult (what the extractor made of it) and PendingSearch (a federated
   search waiting for its reply).

4. **Enumerations**: Quality (the service's format ids), PlaylistKind and
   PlaylistState.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from ..core.exceptions import MalformedRecord, QobuzSyncError
from ..utils.logger import get_logger

NSEC_PER_SEC = 1_000_000_000

logger = get_logger(__name__)


class Quality(IntEnum):
    """
    Streaming quality preference

    Values are the service's ``format_id`` parameter: they are sent as-is in
    signed streaming URL requests.
    """
    NONE = 0
    LOSSY = 5      # MP3 320 kbps
    LOSSLESS = 6   # FLAC 16 bit / 44.1 kHz

    @classmethod
    def from_value(cls, value: Any) -> 'Quality':
        """Parse a stored or user-supplied value, falling back to NONE"""
        if isinstance(value, str) and value.upper() in cls.__members__:
            return cls[value.upper()]
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.NONE


class PlaylistKind(Enum):
    """Which collection a playlist belongs to"""
    USER_OWNED = "user_owned"
    USER_FAVORITES = "user_favorites"
    FEATURED = "featured"


class PlaylistState(Enum):
    """
    Population state of a mirrored playlist

    UNKNOWN -> POPULATING -> POPULATED, and POPULATED -> POPULATING on every
    refresh. Transitions are driven only by replies.
    """
    UNKNOWN = "unknown"
    POPULATING = "populating"
    POPULATED = "populated"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedRecord(f"Not an integer: {value!r}")


def _as_map(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class Track:
    """
    A streamable catalog track

    Attributes:
        remote_id: Qobuz track id (identity of the track)
        title: Track title
        artist: Performer name
        album_artist: Album artist name
        album: Album title
        genre: Album genre name
        duration_nanos: Length in nanoseconds
        track_number: Position on the album
        year: Album release year (0 when unknown)
        cover_url: Large album cover URL
        streamable: Always True for a constructed Track
    """
    remote_id: str
    title: str
    artist: str
    album_artist: str
    album: str
    genre: str
    duration_nanos: int
    track_number: int
    year: int
    cover_url: str
    streamable: bool = True

    @classmethod
    def from_qobuz_data(cls, record: Any) -> 'Track':
        """
        Map a raw catalog record to a Track

        Args:
            record: Decoded JSON object for one track

        Returns:
            Track instance

        Raises:
            MalformedRecord: If the record is empty, not streamable, has no id
                or carries non-numeric numeric fields
        """
        if not isinstance(record, dict) or not record:
            raise MalformedRecord("Empty or non-object track record")

        if not _as_bool(record.get('streamable')):
            raise MalformedRecord(
                "Track is not streamable",
                details={'track_id': record.get('id')}
            )

        remote_id = record.get('id')
        if remote_id is None or str(remote_id) == "":
            raise MalformedRecord("Track record without id")

        album = _as_map(record.get('album'))

        released_at = _as_int(album.get('released_at'))
        year = datetime.fromtimestamp(released_at, tz=timezone.utc).year if released_at else 0

        return cls(
            remote_id=str(remote_id),
            title=str(record.get('title') or ""),
            artist=str(_as_map(record.get('performer')).get('name') or ""),
            album_artist=str(_as_map(album.get('artist')).get('name') or ""),
            album=str(album.get('title') or ""),
            genre=str(_as_map(album.get('genre')).get('name') or ""),
            duration_nanos=_as_int(record.get('duration')) * NSEC_PER_SEC,
            track_number=_as_int(record.get('track_number')),
            year=year,
            cover_url=str(_as_map(album.get('image')).get('large') or ""),
            streamable=True,
        )

    @property
    def duration_seconds(self) -> int:
        return self.duration_nanos // NSEC_PER_SEC

    @property
    def url(self) -> str:
        """Internal playback URL (resolved to a real stream at play time)"""
        return f"qobuz:{self.remote_id}"


def extract_tracks(collection: Any) -> List[Track]:
    """
    Map a ``{"items": [...]}`` collection to Tracks, dropping unusable records

    Args:
        collection: The ``tracks`` member of a reply

    Returns:
        Tracks in server order; malformed or non-streamable records are skipped
    """
    tracks = []
    for record in _as_map(collection).get('items') or []:
        try:
            tracks.append(Track.from_qobuz_data(record))
        except MalformedRecord as e:
            logger.debug(f"Dropping catalog record: {e}")
    return tracks


def extract_track_ids(collection: Any) -> List[str]:
    """
    Ids of every track record in a collection, in server order

    Unlike extract_tracks() this keeps non-streamable members: playlist
    membership written back to the server must not lose them.
    """
    ids = []
    for record in _as_map(collection).get('items') or []:
        if isinstance(record, dict) and record.get('id') not in (None, ""):
            ids.append(str(record['id']))
    return ids


@dataclass
class PlaylistInfo:
    """
    Mirror of one server-side playlist

    Attributes:
        id: Qobuz playlist id
        name: Name as last echoed by the server
        kind: Collection the playlist belongs to
        editable: Whether membership edits, rename and delete are allowed
        member_track_ids: Ordered track ids from the last reconciled reply
        tracks: Streamable tracks from the last reconciled reply
        owner_id: Owner user id, when the server reported it
        collaborative: Collaborative flag reported by the server
        state: Population state
    """
    id: int
    name: str
    kind: PlaylistKind
    editable: bool
    member_track_ids: List[str] = field(default_factory=list)
    tracks: List[Track] = field(default_factory=list)
    owner_id: Optional[str] = None
    collaborative: bool = False
    state: PlaylistState = PlaylistState.UNKNOWN

    @classmethod
    def from_qobuz_data(cls, data: Dict[str, Any], kind: PlaylistKind, user_id: Optional[str]) -> 'PlaylistInfo':
        """
        Build a playlist summary from a playlist-list item or a server echo

        Raises:
            MalformedRecord: If the item has no usable id
        """
        if not isinstance(data, dict):
            raise MalformedRecord("Non-object playlist record")
        playlist_id = _as_int(data.get('id'), default=-1)
        if playlist_id < 0:
            raise MalformedRecord("Playlist record without id")

        owner = _as_map(data.get('owner'))
        owner_id = str(owner['id']) if owner.get('id') is not None else None

        playlist = cls(
            id=playlist_id,
            name=str(data.get('name') or ""),
            kind=kind,
            editable=False,
            owner_id=owner_id,
            collaborative=_as_bool(data.get('is_collaborative')),
        )
        playlist.editable = compute_editable(playlist, user_id)
        return playlist

    def apply_echo(self, data: Dict[str, Any], user_id: Optional[str]) -> None:
        """Update name and ownership from an authoritative server echo"""
        if data.get('name') is not None:
            self.name = str(data['name'])
        owner = _as_map(data.get('owner'))
        if owner.get('id') is not None:
            self.owner_id = str(owner['id'])
        if 'is_collaborative' in data:
            self.collaborative = _as_bool(data['is_collaborative'])
        self.editable = compute_editable(self, user_id)


def compute_editable(playlist: PlaylistInfo, user_id: Optional[str]) -> bool:
    """
    Editability policy

    Featured playlists are never editable. Favorites are always editable.
    A user playlist is editable unless the server says it belongs to someone
    else and is not collaborative; a playlist whose owner is unknown (e.g. one
    we just created) is treated as ours.
    """
    if playlist.kind == PlaylistKind.FEATURED:
        return False
    if playlist.kind == PlaylistKind.USER_FAVORITES:
        return True
    if playlist.owner_id is None:
        return True
    return playlist.owner_id == user_id or playlist.collaborative


@dataclass
class RawResponse:
    """Undecoded reply as produced by the dispatcher"""
    resource: str
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ApiResult:
    """
    Outcome of one request: decoded data or a typed failure

    Exactly one of ``data`` (possibly empty) and ``error`` is meaningful.
    """
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[QobuzSyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def succeeded(self) -> bool:
        """True for replies that carry ``"status": "success"``"""
        return self.ok and self.data.get('status') == 'success'


@dataclass
class PendingSearch:
    """A federated search waiting for its reply"""
    caller_id: int
    query_tokens: List[str] = field(default_factory=list)
