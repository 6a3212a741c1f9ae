"""
Scene Node

Host-side handles produced by the importer: transform nodes with
parent/child links, mesh renderers, collider requests and LOD groups.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
from pyrr import Quaternion, Vector3


class ColliderType(Enum):
    """Collider shape requested for mesh-bearing nodes."""
    NONE = "none"
    BOX = "box"
    MESH = "mesh"
    MESH_CONVEX = "mesh_convex"


class ColliderRequest:
    """
    Collider the host should attach to a node.

    Box colliders carry the mesh bounds; mesh colliders reference the mesh.
    """

    def __init__(self, collider_type: ColliderType, mesh=None,
                 center: Optional[np.ndarray] = None, size: Optional[np.ndarray] = None):
        self.collider_type = collider_type
        self.mesh = mesh
        self.center = center
        self.size = size

    @property
    def convex(self) -> bool:
        return self.collider_type == ColliderType.MESH_CONVEX

    def __repr__(self):
        return f"ColliderRequest(type={self.collider_type.value})"


class MeshRenderer:
    """
    Geometry handle attached to a node.

    Holds the shared merged mesh, one material per primitive, the skin
    binding (if skinned) and per-target blend shape weights in host units.
    """

    def __init__(self, mesh, materials: List, skin=None,
                 blend_shape_weights: Optional[List[float]] = None):
        self.mesh = mesh
        self.materials = materials
        self.skin = skin
        self.blend_shape_weights: List[float] = list(blend_shape_weights or [])

    @property
    def is_skinned(self) -> bool:
        return self.skin is not None

    def __repr__(self):
        return f"MeshRenderer(mesh='{self.mesh.name}', materials={len(self.materials)}, skinned={self.is_skinned})"


class LodTier:
    """One level of a LOD group: the renderers shown above a screen coverage."""

    def __init__(self, screen_coverage: float, renderers: List[MeshRenderer]):
        self.screen_coverage = screen_coverage
        self.renderers = renderers

    def __repr__(self):
        return f"LodTier(coverage={self.screen_coverage:.3f}, renderers={len(self.renderers)})"


class LodGroup:
    """LOD metadata attached to the synthetic group node."""

    def __init__(self, tiers: Optional[List[LodTier]] = None):
        self.tiers: List[LodTier] = tiers or []

    @property
    def coverages(self) -> List[float]:
        return [tier.screen_coverage for tier in self.tiers]


class AnimationComponent:
    """Clips attached to the scene root, keyed by name."""

    def __init__(self):
        self.clips: Dict[str, "AnimationClip"] = {}
        self.default_clip = None

    def add_clip(self, clip, name: str):
        self.clips[name] = clip
        if self.default_clip is None:
            self.default_clip = clip


class SceneNode:
    """
    Transform node in the imported hierarchy.

    Each node has:
    - Local position/rotation/scale in host space
    - Parent and ordered children
    - Optional renderer, collider, LOD group and animation component
    """

    def __init__(self, name: str):
        """
        Initialize node.

        Args:
            name: Node name (unique within one import)
        """
        self.name = name
        self.parent: Optional["SceneNode"] = None
        self.children: List["SceneNode"] = []
        self.active = True

        self.position = Vector3([0.0, 0.0, 0.0])
        self.rotation = Quaternion([0.0, 0.0, 0.0, 1.0])  # pyrr order: x, y, z, w
        self.scale = Vector3([1.0, 1.0, 1.0])

        self.renderer: Optional[MeshRenderer] = None
        self.collider: Optional[ColliderRequest] = None
        self.lod_group: Optional[LodGroup] = None
        self.animation: Optional[AnimationComponent] = None

    def set_parent(self, parent: Optional["SceneNode"]):
        """Reparent this node, keeping its local transform."""
        if self.parent is parent:
            return
        if self.parent is not None:
            self.parent.children.remove(self)
        self.parent = parent
        if parent is not None:
            parent.children.append(self)

    def iter_descendants(self):
        """Depth-first walk over this node and everything below it."""
        yield self
        for child in self.children:
            yield from child.iter_descendants()

    def renderers_in_children(self) -> List[MeshRenderer]:
        return [node.renderer for node in self.iter_descendants() if node.renderer is not None]

    def find(self, relative_path: str) -> Optional["SceneNode"]:
        """Resolve a '/'-joined path of child names below this node."""
        current = self
        for part in relative_path.split("/"):
            if not part:
                continue
            current = next((child for child in current.children if child.name == part), None)
            if current is None:
                return None
        return current

    def relative_path_from(self, root: "SceneNode") -> str:
        """
        Path of names from root (exclusive) down to this node.

        Raises:
            ValueError: If root is not an ancestor of this node
        """
        path: List[str] = []
        current = self
        while current is not None:
            if current is root:
                return "/".join(path)
            path.insert(0, current.name)
            current = current.parent
        raise ValueError(f"'{root.name}' is not an ancestor of '{self.name}'")

    def __repr__(self):
        return f"SceneNode(name='{self.name}', children={len(self.children)})"


class SceneSink:
    """
    Receives nodes as the importer finishes them.

    The default implementation does nothing; hosts override
    node_constructed to mirror nodes into their own scene graph.
    """

    def node_constructed(self, node: SceneNode):
        pass


def bounds_of(vertices: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Axis-aligned bounds of a vertex array as (center, size)."""
    if vertices is None or len(vertices) == 0:
        zero = np.zeros(3, dtype='f4')
        return zero, zero.copy()
    lo = vertices.min(axis=0)
    hi = vertices.max(axis=0)
    return ((lo + hi) * 0.5).astype('f4'), (hi - lo).astype('f4')
