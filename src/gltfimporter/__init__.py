"""
gltfimporter - Incremental glTF 2.0 Importer

Builds a linked scene (nodes, merged meshes, materials, textures, skins
and animation clips) from a glTF or GLB document, decoding every
referenced resource at most once.
"""

# Configuration
from .config.settings import *
from .config.import_options import ImportOptions

# Errors
from .errors import (
    GltfImportError,
    DocumentIntegrityError,
    TruncatedAssetError,
    UnsupportedTopologyError,
    PrecedenceError,
    ConcurrentImportError,
    DisjointSkinJointsError,
    LowMemoryError,
    ImportCancelledError,
)

# Scene handles
from .scene import SceneNode, SceneSink, MeshRenderer, ColliderType, LodGroup

# Core
from .core import ImportProgress, ImportStatistics, ImportScheduler

# Loaders
from .loaders import GltfImporter, DataLoader, FileLoader

# Animation
from .animation import AnimationClip, AnimationCurve, Keyframe

__version__ = "0.1.0"
__all__ = [
    # Config (exported via *)
    "ImportOptions",
    # Errors
    "GltfImportError",
    "DocumentIntegrityError",
    "TruncatedAssetError",
    "UnsupportedTopologyError",
    "PrecedenceError",
    "ConcurrentImportError",
    "DisjointSkinJointsError",
    "LowMemoryError",
    "ImportCancelledError",
    # Scene
    "SceneNode",
    "SceneSink",
    "MeshRenderer",
    "ColliderType",
    "LodGroup",
    # Core
    "ImportProgress",
    "ImportStatistics",
    "ImportScheduler",
    # Loaders
    "GltfImporter",
    "DataLoader",
    "FileLoader",
    # Animation
    "AnimationClip",
    "AnimationCurve",
    "Keyframe",
]
