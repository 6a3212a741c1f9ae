"""Host-side scene handles produced by the importer."""

from .scene_node import (
    AnimationComponent,
    ColliderRequest,
    ColliderType,
    LodGroup,
    LodTier,
    MeshRenderer,
    SceneNode,
    SceneSink,
)

__all__ = [
    "AnimationComponent",
    "ColliderRequest",
    "ColliderType",
    "LodGroup",
    "LodTier",
    "MeshRenderer",
    "SceneNode",
    "SceneSink",
]
