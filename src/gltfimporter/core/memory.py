"""
Memory Checker

Aborts an import when the machine is running out of memory instead of
letting construction continue into swap or an allocation failure.
"""

import logging

import psutil

from ..config import settings
from ..errors import LowMemoryError

logger = logging.getLogger(__name__)


class MemoryChecker:
    """Compares available system memory against a fixed threshold."""

    def __init__(self, threshold_mb: int = settings.LOW_MEMORY_THRESHOLD_MB):
        """
        Initialize checker.

        Args:
            threshold_mb: Minimum available memory before aborting
        """
        self.threshold_bytes = int(threshold_mb) * 1024 * 1024

    def available_bytes(self) -> int:
        return int(psutil.virtual_memory().available)

    def throw_if_out_of_memory(self):
        """
        Raise if available memory is below the threshold.

        Raises:
            LowMemoryError: When available memory < threshold
        """
        available = self.available_bytes()
        if available < self.threshold_bytes:
            logger.warning("Low memory: %.1f MB available, threshold %.1f MB",
                           available / (1024 * 1024), self.threshold_bytes / (1024 * 1024))
            raise LowMemoryError(
                f"Only {available / (1024 * 1024):.1f} MB available "
                f"(threshold {self.threshold_bytes / (1024 * 1024):.0f} MB)"
            )
