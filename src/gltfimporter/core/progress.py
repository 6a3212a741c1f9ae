"""Import progress counters and statistics."""

from dataclasses import dataclass, replace
from typing import Callable, Optional


@dataclass
class ImportProgress:
    """Monotonic counters read by the host for progress UI."""
    nodes_total: int = 0
    nodes_loaded: int = 0
    textures_total: int = 0
    textures_loaded: int = 0
    buffers_total: int = 0
    buffers_loaded: int = 0
    is_downloaded: bool = False

    def snapshot(self) -> "ImportProgress":
        return replace(self)

    @property
    def fraction(self) -> float:
        """Overall completion in [0, 1] over nodes, textures and buffers."""
        total = self.nodes_total + self.textures_total + self.buffers_total
        if total == 0:
            return 0.0
        loaded = self.nodes_loaded + self.textures_loaded + self.buffers_loaded
        return min(1.0, loaded / total)


@dataclass
class ImportStatistics:
    """Geometry totals gathered while building meshes."""
    vertex_count: int = 0
    triangle_count: int = 0


class ProgressReporter:
    """
    Owns the live ImportProgress and pushes snapshots to an observer.

    Counters only ever increase; the observer always receives a copy.
    """

    def __init__(self, observer: Optional[Callable[[ImportProgress], None]] = None):
        self.observer = observer
        self.status = ImportProgress()

    def reset(self):
        self.status = ImportProgress()
        self.report()

    def report(self):
        if self.observer is not None:
            self.observer(self.status.snapshot())

    def add_totals(self, nodes: int = 0, textures: int = 0, buffers: int = 0):
        self.status.nodes_total += nodes
        self.status.textures_total += textures
        self.status.buffers_total += buffers
        self.report()

    def node_loaded(self):
        self.status.nodes_loaded += 1
        self.report()

    def texture_loaded(self):
        self.status.textures_loaded += 1
        self.report()

    def buffer_loaded(self):
        self.status.buffers_loaded += 1
        self.report()

    def mark_downloaded(self):
        self.status.is_downloaded = True
        self.report()
