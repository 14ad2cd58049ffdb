"""
Synchronization package

- search.py: debounced interactive search and federated simple search
- registry.py: playlist and favorites mirror
- service.py: QobuzService facade, logout drain and query surface
"""

from .service import QobuzService
from .registry import PlaylistRegistry, FAVORITES_ID
from .search import SearchCoordinator

__all__ = [
    'QobuzService',
    'PlaylistRegistry',
    'SearchCoordinator',
    'FAVORITES_ID',
]
