"""
Mesh Builder

Merges every primitive of a glTF mesh into one host mesh with one submesh
per primitive. Attribute accessors are prepared in a first pass
(construct_mesh_attributes) so decoding can happen later, in build_mesh.
"""

import logging
from enum import IntEnum
from typing import Dict, List, Optional

import numpy as np

from .attribute_transforms import flip_triangle_faces, transform_for_attribute, transform_for_target
from ..config import settings
from ..errors import DocumentIntegrityError, PrecedenceError, UnsupportedTopologyError
from ..scene.scene_node import bounds_of

logger = logging.getLogger(__name__)

# Vertex channels merged into the host mesh
ATTRIBUTE_NAMES = (
    "POSITION",
    "NORMAL",
    "TANGENT",
    "TEXCOORD_0",
    "TEXCOORD_1",
    "TEXCOORD_2",
    "TEXCOORD_3",
    "COLOR_0",
    "JOINTS_0",
    "WEIGHTS_0",
)

UV_CHANNELS = 4


class Topology(IntEnum):
    """Primitive draw modes the host supports (values are glTF modes)."""
    POINTS = 0
    LINES = 1
    LINE_STRIP = 3
    TRIANGLES = 4


def topology_for_mode(mode: Optional[int]) -> Topology:
    """
    Raises:
        UnsupportedTopologyError: LINE_LOOP, TRIANGLE_STRIP, TRIANGLE_FAN or unknown
    """
    if mode is None:
        return Topology.TRIANGLES
    try:
        return Topology(mode)
    except ValueError:
        raise UnsupportedTopologyError(f"Primitive mode {mode} is not supported") from None


class SubMesh:
    """Index range of one source primitive inside the merged mesh."""

    def __init__(self, indices: np.ndarray, topology: Topology, base_vertex: int):
        self.indices = indices
        self.topology = topology
        self.base_vertex = base_vertex

    def absolute_indices(self) -> np.ndarray:
        return self.indices.astype(np.uint32) + np.uint32(self.base_vertex)


class BoneWeights:
    """Four joint influences per vertex."""

    def __init__(self, indices: np.ndarray, weights: np.ndarray):
        self.indices = indices
        self.weights = weights


class BlendShape:
    """One morph target as per-vertex deltas over the merged mesh."""

    def __init__(self, name: str, vertex_deltas: np.ndarray,
                 normal_deltas: Optional[np.ndarray] = None, tangent_deltas: Optional[np.ndarray] = None):
        self.name = name
        self.vertex_deltas = vertex_deltas
        self.normal_deltas = normal_deltas
        self.tangent_deltas = tangent_deltas


class MeshPayload:
    """Merged host mesh."""

    def __init__(self, name: str, vertex_count: int):
        self.name = name
        self.vertex_count = vertex_count
        self.vertices = np.zeros((vertex_count, 3), dtype='f4')
        self.normals: Optional[np.ndarray] = None
        self.tangents: Optional[np.ndarray] = None
        self.uvs: List[Optional[np.ndarray]] = [None] * UV_CHANNELS
        self.colors: Optional[np.ndarray] = None
        self.bone_weights: Optional[BoneWeights] = None
        self.submeshes: List[SubMesh] = []
        self.blend_shapes: List[BlendShape] = []
        self.bind_poses: Optional[np.ndarray] = None
        self.bounds_center = np.zeros(3, dtype='f4')
        self.bounds_size = np.zeros(3, dtype='f4')
        self.index_format = 16
        self.readable = True

    @property
    def triangle_count(self) -> int:
        return sum(len(sub.indices) // 3 for sub in self.submeshes if sub.topology == Topology.TRIANGLES)

    def __repr__(self):
        return f"MeshPayload(name='{self.name}', vertices={self.vertex_count}, submeshes={len(self.submeshes)})"


class PrimitiveCacheEntry:
    """Accessor handles of one primitive."""

    def __init__(self, definition, attributes: Dict, targets: List[Dict]):
        self.definition = definition
        self.attributes = attributes
        self.targets = targets

    @property
    def mode(self) -> Optional[int]:
        return self.definition.mode

    @property
    def material_index(self) -> Optional[int]:
        return self.definition.material

    @property
    def has_vertex_colors(self) -> bool:
        return "COLOR_0" in self.attributes


class MeshCacheEntry:
    """Per-mesh cache slot: accessor maps, materials and the built payload."""

    def __init__(self, primitives: List[PrimitiveCacheEntry]):
        self.primitives = primitives
        self.materials: List = []
        self.loaded_mesh: Optional[MeshPayload] = None


def _target_items(target) -> Dict[str, int]:
    """Morph targets arrive as plain dicts or as pygltflib Attributes."""
    if target is None:
        return {}
    if isinstance(target, dict):
        items = target
    else:
        items = vars(target)
    return {name: index for name, index in items.items()
            if index is not None and not name.startswith("_")}


def _target_names(extras) -> Optional[List[str]]:
    if isinstance(extras, dict):
        names = extras.get("targetNames")
        if names:
            return list(names)
    return None


def compute_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """
    Smooth vertex normals from triangle faces.

    Face normals are accumulated unnormalized, so larger faces weigh more.
    """
    normals = np.zeros_like(vertices, dtype='f4')
    if len(triangles) == 0:
        return normals
    tris = triangles.reshape(-1, 3).astype(np.int64)
    v0 = vertices[tris[:, 0]]
    v1 = vertices[tris[:, 1]]
    v2 = vertices[tris[:, 2]]
    face_normals = np.cross(v1 - v0, v2 - v0)
    for corner in range(3):
        np.add.at(normals, tris[:, corner], face_normals)
    lengths = np.linalg.norm(normals, axis=1)
    nonzero = lengths > 0
    normals[nonzero] /= lengths[nonzero, None]
    return normals


class MeshBuilder:
    """
    Builds merged meshes for one import session.

    Each mesh is built once and shared by every node that references it.
    """

    def __init__(self, document, cache, resolver, options, statistics, material_builder=None):
        """
        Initialize builder.

        Args:
            document: Parsed glTF document
            cache: AssetCache with the meshes table
            resolver: BufferResolver for accessor handles
            options: ImportOptions
            statistics: ImportStatistics updated per built mesh
            material_builder: Builds per-primitive materials (optional)
        """
        self.document = document
        self.cache = cache
        self.resolver = resolver
        self.options = options
        self.statistics = statistics
        self.material_builder = material_builder

    def construct_mesh_attributes(self, mesh_index: int) -> MeshCacheEntry:
        """
        Create accessor handles for every primitive of a mesh.

        Idempotent: the existing entry is returned on later calls.
        """
        meshes = self.document.meshes or []
        if mesh_index is None or not 0 <= mesh_index < len(meshes):
            raise DocumentIntegrityError(f"Mesh index {mesh_index} out of range")

        entry = self.cache.get("meshes", mesh_index)
        if entry is not None:
            return entry

        mesh = meshes[mesh_index]
        if not mesh.primitives:
            raise DocumentIntegrityError(f"Mesh {mesh_index} has no primitives")

        primitives = []
        for primitive in mesh.primitives:
            attributes = {}
            for name in ATTRIBUTE_NAMES:
                accessor_index = getattr(primitive.attributes, name, None)
                if accessor_index is not None:
                    attributes[name] = self.resolver.resolve_accessor(
                        accessor_index, transform_for_attribute(name))
            if "POSITION" not in attributes:
                raise DocumentIntegrityError(f"Mesh {mesh_index} has a primitive without POSITION")

            if primitive.indices is not None:
                is_triangles = primitive.mode is None or primitive.mode == Topology.TRIANGLES
                attributes["INDICES"] = self.resolver.resolve_accessor(
                    primitive.indices, flip_triangle_faces if is_triangles else None)

            targets = []
            for target in primitive.targets or []:
                targets.append({
                    name: self.resolver.resolve_accessor(index, transform_for_target(name))
                    for name, index in _target_items(target).items()
                })

            primitives.append(PrimitiveCacheEntry(primitive, attributes, targets))

        entry = MeshCacheEntry(primitives)
        logger.debug("Mesh %d: %d primitive(s) prepared", mesh_index, len(primitives))
        return self.cache.store("meshes", mesh_index, entry)

    def build_mesh(self, mesh_index: int) -> MeshPayload:
        """
        Decode and merge all primitives of a mesh.

        Args:
            mesh_index: Index into document.meshes

        Returns:
            The shared MeshPayload (the same object on every call)

        Raises:
            PrecedenceError: If construct_mesh_attributes has not run
            UnsupportedTopologyError: For strip/fan/loop primitives
        """
        entry = self.cache.get("meshes", mesh_index)
        if entry is None:
            raise PrecedenceError(f"Mesh {mesh_index} attributes must be constructed before the mesh is built")
        if entry.loaded_mesh is not None:
            return entry.loaded_mesh

        topologies = [topology_for_mode(p.mode) for p in entry.primitives]
        mesh = self.document.meshes[mesh_index]

        vertex_count = sum(p.attributes["POSITION"].count for p in entry.primitives)
        payload = MeshPayload(mesh.name or f"Mesh{mesh_index}", vertex_count)

        # Channel set comes from the first primitive
        first = entry.primitives[0].attributes
        if "NORMAL" in first:
            payload.normals = np.zeros((vertex_count, 3), dtype='f4')
        if "TANGENT" in first:
            payload.tangents = np.zeros((vertex_count, 4), dtype='f4')
        for channel in range(UV_CHANNELS):
            if f"TEXCOORD_{channel}" in first:
                payload.uvs[channel] = np.zeros((vertex_count, 2), dtype='f4')
        if "COLOR_0" in first:
            payload.colors = np.ones((vertex_count, 4), dtype='f4')
        if "JOINTS_0" in first and "WEIGHTS_0" in first:
            payload.bone_weights = BoneWeights(np.zeros((vertex_count, 4), dtype=np.int32),
                                               np.zeros((vertex_count, 4), dtype='f4'))

        offset = 0
        for primitive, topology in zip(entry.primitives, topologies):
            attributes = primitive.attributes
            count = attributes["POSITION"].count
            span = slice(offset, offset + count)

            payload.vertices[span] = attributes["POSITION"].content.as_vec3s()
            if payload.normals is not None and "NORMAL" in attributes:
                payload.normals[span] = attributes["NORMAL"].content.as_vec3s()
            if payload.tangents is not None and "TANGENT" in attributes:
                payload.tangents[span] = attributes["TANGENT"].content.as_vec4s()
            for channel in range(UV_CHANNELS):
                name = f"TEXCOORD_{channel}"
                if payload.uvs[channel] is not None and name in attributes:
                    payload.uvs[channel][span] = attributes[name].content.as_vec2s()
            if payload.colors is not None and "COLOR_0" in attributes:
                payload.colors[span] = attributes["COLOR_0"].content.as_vec4s()
            if payload.bone_weights is not None and "JOINTS_0" in attributes and "WEIGHTS_0" in attributes:
                payload.bone_weights.indices[span] = attributes["JOINTS_0"].content.as_uints().reshape(-1, 4)
                payload.bone_weights.weights[span] = attributes["WEIGHTS_0"].content.as_vec4s()

            if "INDICES" in attributes:
                indices = attributes["INDICES"].content.as_uints()
            else:
                indices = np.arange(count, dtype=np.uint32)
                if topology == Topology.TRIANGLES:
                    indices = flip_triangle_faces(indices)

            payload.submeshes.append(SubMesh(indices, topology, offset))
            offset += count

        if payload.normals is None and all(t == Topology.TRIANGLES for t in topologies):
            triangles = np.concatenate([sub.absolute_indices() for sub in payload.submeshes])
            payload.normals = compute_normals(payload.vertices, triangles)

        payload.blend_shapes = self._build_blend_shapes(mesh, entry, vertex_count)
        payload.bounds_center, payload.bounds_size = bounds_of(payload.vertices)
        if vertex_count > settings.MAX_16BIT_INDEX_VERTICES:
            payload.index_format = 32
        payload.readable = self.options.keep_cpu_copy_of_mesh

        self.statistics.vertex_count += vertex_count
        self.statistics.triangle_count += payload.triangle_count

        if self.material_builder is not None and not self.options.skip_texture_loading:
            entry.materials = [self.material_builder.build_material(p.material_index)
                               for p in entry.primitives]

        entry.loaded_mesh = payload
        logger.debug("Built mesh '%s': %d vertices, %d submeshes",
                     payload.name, vertex_count, len(payload.submeshes))
        return payload

    def _build_blend_shapes(self, mesh, entry: MeshCacheEntry, vertex_count: int) -> List[BlendShape]:
        """Morph targets as declared by the first primitive."""
        declared = entry.primitives[0].targets
        if not declared:
            return []

        names = (_target_names(mesh.extras)
                 or _target_names(entry.primitives[0].definition.extras)
                 or [])

        shapes = []
        for target_index, first_target in enumerate(declared):
            name = names[target_index] if target_index < len(names) else \
                f"{settings.MORPH_TARGET_PREFIX}{target_index}"
            deltas = {}
            for channel in ("POSITION", "NORMAL", "TANGENT"):
                if channel not in first_target:
                    continue
                merged = np.zeros((vertex_count, 3), dtype='f4')
                offset = 0
                for primitive in entry.primitives:
                    count = primitive.attributes["POSITION"].count
                    if target_index < len(primitive.targets) and channel in primitive.targets[target_index]:
                        merged[offset:offset + count] = primitive.targets[target_index][channel].content.as_vec3s()
                    offset += count
                deltas[channel] = merged
            shapes.append(BlendShape(name,
                                     deltas.get("POSITION", np.zeros((vertex_count, 3), dtype='f4')),
                                     deltas.get("NORMAL"),
                                     deltas.get("TANGENT")))
        return shapes
