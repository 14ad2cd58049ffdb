"""
qobuz-sync: keep a local mirror of a Qobuz library in sync with the server

The engine authenticates against the Qobuz JSON API, mirrors search results,
favorites, user playlists and featured playlists, and keeps that mirror
consistent while many requests are in flight at once and their replies
arrive in any order.

## Architecture

**Configuration (`qobuz_sync/config/`)**
- YAML and environment variable settings (application id, endpoint, search
  debounce, request throttling)
- Persisted session (token, user id, streaming quality)

**Engine core (`qobuz_sync/core/`)**
- Session context shared by every request-issuing component
- Correlation tokens used to recognise stale replies
- Task table and event bus consumed by front ends

**Qobuz API (`qobuz_sync/qobuz/`)**
- Non-blocking request dispatch with aiohttp and a request throttler
- Reply validation and JSON decoding into typed results
- Mapping of raw records to tracks and playlists
- Login, entitlement check and signed stream URL resolution

**Synchronization (`qobuz_sync/sync/`)**
- Debounced interactive search and fan-out federated search
- Playlist registry reconciled only from server replies
- Service facade with the logout drain

**Command line (`qobuz_sync/main.py`)**
- click commands for every operation of the service

Every component runs on a single asyncio event loop: state is only ever
mutated from reply handlers on that loop, and each handler checks that its
reply is still relevant before touching anything.
"""

__version__ = "v0.3.0"

__author__ = "qobuz-sync contributors"

__description__ = "Qobuz request orchestration and library mirror with a command-line front end"

__all__ = [
    "__version__",
    "__author__",
    "__description__",
]
