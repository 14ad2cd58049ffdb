"""
Qobuz API package

- models.py: tracks, playlists, request results, mapping from raw JSON
- dispatcher.py: non-blocking authenticated calls (aiohttp)
- extractor.py: status check and JSON decoding into ApiResult
- session.py: login, bootstrap and quality preference
- streaming.py: signed, blocking stream URL resolution (requests)

Only the models are re-exported here; the other modules depend on
qobuz_sync.core and are imported directly.
"""

from .models import (
    ApiResult,
    PendingSearch,
    PlaylistInfo,
    PlaylistKind,
    PlaylistState,
    Quality,
    RawResponse,
    Track,
    extract_track_ids,
    extract_tracks,
)

__all__ = [
    'ApiResult',
    'PendingSearch',
    'PlaylistInfo',
    'PlaylistKind',
    'PlaylistState',
    'Quality',
    'RawResponse',
    'Track',
    'extract_track_ids',
    'extract_tracks',
]
