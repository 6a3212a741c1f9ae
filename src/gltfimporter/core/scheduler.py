"""
Import Scheduler

Drives a scene import in time slices so the host can keep rendering
frames while the importer works.
"""

import logging
import time
from typing import Callable, Optional

from ..errors import ImportCancelledError

logger = logging.getLogger(__name__)


class ImportScheduler:
    """
    Steps an importer's load_scene generator.

    Call run_for() once per host frame, or run_until_complete() to block.
    cancel() is observed at the next checkpoint.
    """

    def __init__(self, importer, scene_parent=None, scene_index: int = -1,
                 clock: Callable[[], float] = time.perf_counter):
        """
        Initialize scheduler.

        Args:
            importer: GltfImporter to drive
            scene_parent: Passed to load_scene
            scene_index: Passed to load_scene
            clock: Monotonic time source in seconds
        """
        self.importer = importer
        self.clock = clock
        self._steps = importer.load_scene(scene_parent, scene_index)
        self._cancel_requested = False

        self.done = False
        self.cancelled = False
        self.result = None
        self.steps_taken = 0

    def cancel(self):
        """Request a stop at the next checkpoint."""
        self._cancel_requested = True

    def step(self) -> bool:
        """
        Run the import up to its next checkpoint.

        Returns:
            True while more work remains
        """
        if self.done:
            return False

        if self._cancel_requested:
            self._steps.close()
            self.done = True
            self.cancelled = True
            logger.info("Import cancelled after %d steps", self.steps_taken)
            return False

        try:
            next(self._steps)
        except StopIteration as stop:
            self.done = True
            self.result = stop.value
            return False
        except Exception:
            self.done = True
            raise

        self.steps_taken += 1
        return True

    def run_for(self, seconds: Optional[float] = None) -> bool:
        """
        Work until the time slice is used up or the import finishes.

        At least one step runs per call.

        Args:
            seconds: Slice length (default: the importer's timeout option)

        Returns:
            True once the import is finished (or cancelled)
        """
        if seconds is None:
            seconds = self.importer.options.timeout
        deadline = self.clock() + seconds
        while self.step():
            if self.clock() >= deadline:
                break
        return self.done

    def run_until_complete(self):
        """
        Run the whole import.

        Returns:
            The scene root

        Raises:
            ImportCancelledError: If cancel() stopped the import
        """
        while self.step():
            pass
        if self.cancelled:
            raise ImportCancelledError("Import was cancelled")
        return self.result
