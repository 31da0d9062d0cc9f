"""Loading, change tracking and persistence of published content."""

from .loader import RemoteContentLoader
from .models import LoadResult, ResyncResult, RowFailure, SaveResult
from .persistence import BackgroundSaver, PersistenceSync
from .state import LocalState
from .tracker import ChangeTracker

__all__ = [
    "BackgroundSaver",
    "ChangeTracker",
    "LoadResult",
    "LocalState",
    "PersistenceSync",
    "RemoteContentLoader",
    "ResyncResult",
    "RowFailure",
    "SaveResult",
]
