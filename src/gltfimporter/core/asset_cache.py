"""
Asset Cache

Per-document memoization tables for one import session.
Every resource is keyed by its index in the document and built once.
"""

import logging
from typing import Any, Dict, List, Optional

import pygltflib

logger = logging.getLogger(__name__)


def _count(items) -> int:
    return len(items) if items else 0


class AssetCache:
    """
    Index-addressed cache for all resources of one glTF document.

    Tables are pre-sized from the document's arrays. Filling a slot twice is
    a logic error: other resources already hold the first object.
    """

    TABLES = (
        "buffers",
        "image_streams",
        "images",
        "textures",
        "materials",
        "meshes",
        "animations",
        "nodes",
    )

    def __init__(self, document: pygltflib.GLTF2):
        """
        Initialize cache.

        Args:
            document: Parsed glTF root the tables are sized from
        """
        self.buffers: List[Optional[Any]] = [None] * _count(document.buffers)
        self.image_streams: List[Optional[Any]] = [None] * _count(document.images)
        self.images: List[Optional[Any]] = [None] * _count(document.images)
        self.textures: List[Optional[Any]] = [None] * _count(document.textures)
        self.materials: List[Optional[Any]] = [None] * _count(document.materials)
        self.meshes: List[Optional[Any]] = [None] * _count(document.meshes)
        self.animations: List[Optional[Any]] = [None] * _count(document.animations)
        self.nodes: List[Optional[Any]] = [None] * _count(document.nodes)

        # Names assigned to nodes (declared or generated)
        self.node_names: List[Optional[str]] = [None] * _count(document.nodes)

        # Every placed node by name, including nodes that existed before import
        self.node_by_name: Dict[str, Any] = {}

        self.disposed = False

    def get(self, table: str, index: int):
        return getattr(self, table)[index]

    def store(self, table: str, index: int, entry):
        """
        Fill an empty slot.

        Raises:
            AssertionError: If the slot already holds an entry
        """
        slots = getattr(self, table)
        assert slots[index] is None, f"{table}[{index}] should not be constructed twice"
        slots[index] = entry
        return entry

    def register_node_name(self, name: str, node):
        self.node_by_name[name] = node

    def dispose(self):
        """Close every owned stream and clear all tables. Safe to call again."""
        if self.disposed:
            return

        closed = set()
        for entry in self.buffers:
            if entry is not None and entry.owns_stream and id(entry.stream) not in closed:
                closed.add(id(entry.stream))
                entry.stream.close()
        for stream in self.image_streams:
            if stream is not None and id(stream) not in closed:
                closed.add(id(stream))
                stream.close()

        for table in self.TABLES:
            slots = getattr(self, table)
            for i in range(len(slots)):
                slots[i] = None
        self.node_by_name.clear()
        self.disposed = True
        logger.debug("Asset cache disposed (%d streams closed)", len(closed))
