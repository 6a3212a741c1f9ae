"""Core import session components"""
from .asset_cache import AssetCache
from .memory import MemoryChecker
from .progress import ImportProgress, ImportStatistics, ProgressReporter
from .scheduler import ImportScheduler

__all__ = [
    "AssetCache",
    "MemoryChecker",
    "ImportProgress",
    "ImportStatistics",
    "ProgressReporter",
    "ImportScheduler",
]
