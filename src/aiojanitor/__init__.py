"""Deterministic, manually triggered resource lifetime management for
asynchronous and synchronous Python code.
"""

from .categories import Category, categorize
from .disposers import dispose
from .errors import GroupDisposalError, TrackerDestroyed, UnsupportedResourceKind
from .tracker import DisposalFailure, ResourceTracker, open_tracker
from .utils.concurrency import Spawner, TaskGroupSpawner, ThreadSpawner
from .version import __version__, __version_info__

__all__ = (
    "Category",
    "DisposalFailure",
    "GroupDisposalError",
    "ResourceTracker",
    "Spawner",
    "TaskGroupSpawner",
    "ThreadSpawner",
    "TrackerDestroyed",
    "UnsupportedResourceKind",
    "categorize",
    "dispose",
    "open_tracker",
    "__version__",
    "__version_info__",
)
