"""Loaders for glTF documents, buffers, meshes, materials and nodes."""

from .data_loader import DataLoader, FileLoader
from .material import Material, MaterialCacheEntry, ShadingModel
from .mesh_builder import MeshPayload, Topology
from .textures import FilterMode, WrapMode
from .texture_transform import TextureTransform
from .gltf_importer import GltfImporter

__all__ = [
    'DataLoader',
    'FileLoader',
    'Material',
    'MaterialCacheEntry',
    'ShadingModel',
    'MeshPayload',
    'Topology',
    'FilterMode',
    'WrapMode',
    'TextureTransform',
    'GltfImporter',
]
