"""
Node Builder

Builds the host node hierarchy from glTF nodes: names, local transforms,
children, mesh renderers, skins, colliders and MSFT_lod groups.
"""

import logging
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np
from pyrr import Quaternion, Vector3

from .attribute_transforms import convert_matrix4x4_space, convert_rotation, convert_translation
from .buffers import AccessorContent
from ..animation.skin import SkinBinding
from ..config import settings
from ..errors import DisjointSkinJointsError, DocumentIntegrityError
from ..scene.scene_node import (ColliderRequest, ColliderType, LodGroup, LodTier,
                                MeshRenderer, SceneNode, SceneSink)

logger = logging.getLogger(__name__)


def quaternion_from_rotation_matrix(rotation: np.ndarray) -> np.ndarray:
    """
    Unit quaternion (x, y, z, w) for a 3x3 rotation matrix (column vectors).
    """
    m = np.asarray(rotation, dtype='f8')
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = np.sqrt(trace + 1.0) * 2.0
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    quat = np.array([x, y, z, w], dtype='f8')
    return (quat / np.linalg.norm(quat)).astype('f4')


def decompose_matrix(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Split a 4x4 column-vector matrix into translation, rotation and scale.

    A negative determinant is folded into the X scale.

    Returns:
        (translation (3,), rotation (x, y, z, w), scale (3,))
    """
    m = np.asarray(matrix, dtype='f4').reshape(4, 4)
    translation = m[:3, 3].copy()
    basis = m[:3, :3].copy()
    scale = np.linalg.norm(basis, axis=0)
    if np.linalg.det(basis) < 0:
        scale[0] = -scale[0]
    safe = np.where(scale == 0, 1.0, scale)
    rotation = quaternion_from_rotation_matrix(basis / safe)
    return translation, rotation, scale.astype('f4')


def host_trs(node) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Local transform of a glTF node in host space.

    Matrix nodes are converted as a whole, then decomposed; TRS nodes
    are converted component-wise.
    """
    if node.matrix is not None and len(node.matrix) == 16:
        column_major = np.array(node.matrix, dtype='f4').reshape(4, 4).T
        return decompose_matrix(convert_matrix4x4_space(column_major)[0])

    translation = convert_translation(node.translation if node.translation is not None else (0.0, 0.0, 0.0))
    rotation = convert_rotation(node.rotation if node.rotation is not None else (0.0, 0.0, 0.0, 1.0))
    scale = np.array(node.scale if node.scale is not None else (1.0, 1.0, 1.0), dtype='f4')
    return translation, rotation, scale


def _bind_pose_transform(array: np.ndarray) -> np.ndarray:
    return convert_matrix4x4_space(AccessorContent(array).as_matrix4x4s())


class NodeBuilder:
    """
    Resolves node indices to SceneNodes for one import session.

    Every node is built once and registered by name before its children,
    so skin joints may refer back to a node that is still being built.
    Children and LOD references that lead back into the current chain of
    construction are cycles and rejected.
    """

    def __init__(self, document, cache, resolver, mesh_builder, options,
                 progress=None, sink: Optional[SceneSink] = None):
        """
        Initialize builder.

        Args:
            document: Parsed glTF document
            cache: AssetCache (nodes, names, guards)
            resolver: BufferResolver for inverse bind matrices
            mesh_builder: MeshBuilder for node meshes
            options: ImportOptions (collider, cull_far_lod, skip_texture_loading)
            progress: ProgressReporter notified per constructed node
            sink: Host sink notified per constructed node
        """
        self.document = document
        self.cache = cache
        self.resolver = resolver
        self.mesh_builder = mesh_builder
        self.options = options
        self.progress = progress
        self.sink = sink or SceneSink()
        self._parents: Optional[Dict[int, int]] = None

    # ------------------------------------------------------------------
    # Names
    # ------------------------------------------------------------------

    def node_name(self, node_index: int) -> str:
        """
        Declared name, or a generated one that is unused in the name table.

        Generated names are Node<index>, then Node<index>_0, Node<index>_1, ...
        """
        assigned = self.cache.node_names[node_index]
        if assigned is not None:
            return assigned

        node = self.document.nodes[node_index]
        if node.name:
            name = node.name
        else:
            taken = set(self.cache.node_by_name)
            taken.update(n for n in self.cache.node_names if n is not None)
            base = f"{settings.GENERATED_NODE_PREFIX}{node_index}"
            name = base
            suffix = 0
            while name in taken:
                name = f"{base}_{suffix}"
                suffix += 1

        self.cache.node_names[node_index] = name
        return name

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _check_index(self, node_index: int):
        nodes = self.document.nodes or []
        if node_index is None or not 0 <= node_index < len(nodes):
            raise DocumentIntegrityError(f"Node index {node_index} out of range")

    def resolve_node(self, node_index: int, chain: FrozenSet[int] = frozenset()) -> SceneNode:
        """
        Return the node for an index, building it on first use.

        Args:
            node_index: Index into document.nodes
            chain: Indices whose children/LOD references led here

        Returns:
            The node registered under the node's name (a LOD group for
            MSFT_lod nodes)

        Raises:
            DocumentIntegrityError: Bad index, or a children/LOD cycle
        """
        self._check_index(node_index)
        if node_index in chain:
            raise DocumentIntegrityError(f"Node {node_index} is its own descendant")

        name = self.node_name(node_index)
        existing = self.cache.node_by_name.get(name)
        if existing is not None:
            return existing

        self.prepare_subtree(node_index)
        return self._construct(node_index, name, chain | {node_index})

    def prepare_subtree(self, node_index: int):
        """Create mesh accessor handles for a node, its children and LOD nodes."""
        pending = [node_index]
        seen = set()
        while pending:
            index = pending.pop()
            if index in seen:
                continue
            seen.add(index)
            self._check_index(index)
            node = self.document.nodes[index]
            if node.mesh is not None:
                self.mesh_builder.construct_mesh_attributes(node.mesh)
            pending.extend(node.children or [])
            pending.extend(self.lod_ids(node))

    def lod_ids(self, node) -> List[int]:
        if settings.EXT_LOD not in (self.document.extensionsUsed or []):
            return []
        extension = (node.extensions or {}).get(settings.EXT_LOD)
        if not extension:
            return []
        return list(extension.get("ids") or [])

    def _construct(self, node_index: int, name: str, chain: FrozenSet[int]) -> SceneNode:
        node = self.document.nodes[node_index]
        node_obj = SceneNode(name)
        # Hidden until complete
        node_obj.active = False

        translation, rotation, scale = host_trs(node)
        node_obj.position = Vector3(translation)
        node_obj.rotation = Quaternion(rotation)
        node_obj.scale = Vector3(scale)

        self.cache.register_node_name(name, node_obj)
        self.cache.store("nodes", node_index, node_obj)
        for child_index in node.children or []:
            child = self.resolve_node(child_index, chain)
            child.set_parent(node_obj)

        if node.mesh is not None:
            self._attach_mesh(node, node_obj)

        result = node_obj
        lod_ids = self.lod_ids(node)
        if lod_ids:
            result = self._build_lod_group(node, node_obj, lod_ids, chain)

        node_obj.active = True
        logger.debug("Constructed node %d '%s'", node_index, name)
        if self.progress is not None:
            self.progress.node_loaded()
        self.sink.node_constructed(result)
        return result

    # ------------------------------------------------------------------
    # Meshes & skins
    # ------------------------------------------------------------------

    def _attach_mesh(self, node, node_obj: SceneNode):
        payload = self.mesh_builder.build_mesh(node.mesh)
        entry = self.cache.get("meshes", node.mesh)

        materials = []
        if not self.options.skip_texture_loading:
            materials = [material.variant_for(primitive.has_vertex_colors)
                         for material, primitive in zip(entry.materials, entry.primitives)]

        mesh = self.document.meshes[node.mesh]
        target_count = len(entry.primitives[0].targets)
        # pygltflib.Node has no weights field
        weights = getattr(node, "weights", None) or getattr(mesh, "weights", None) or [0.0] * target_count

        skin = None
        if node.skin is not None:
            skin = self.build_skin(node.skin)
            payload.bind_poses = skin.get_bind_poses_array()

        node_obj.renderer = MeshRenderer(
            payload, materials, skin,
            [float(w) * settings.BLEND_SHAPE_WEIGHT_SCALE for w in weights])

        collider = self.options.collider
        if collider == ColliderType.BOX:
            node_obj.collider = ColliderRequest(collider, center=payload.bounds_center, size=payload.bounds_size)
        elif collider in (ColliderType.MESH, ColliderType.MESH_CONVEX):
            node_obj.collider = ColliderRequest(collider, mesh=payload)

    def _parent_map(self) -> Dict[int, int]:
        if self._parents is None:
            self._parents = {}
            for parent_index, node in enumerate(self.document.nodes or []):
                for child_index in node.children or []:
                    self._parents.setdefault(child_index, parent_index)
        return self._parents

    def _ancestors(self, node_index: int) -> List[int]:
        """The node itself followed by its ancestors, nearest first."""
        parents = self._parent_map()
        chain = [node_index]
        seen = {node_index}
        while chain[-1] in parents:
            parent = parents[chain[-1]]
            if parent in seen:
                break
            seen.add(parent)
            chain.append(parent)
        return chain

    def find_common_ancestor(self, joints: List[int]) -> Optional[int]:
        """
        Nearest node that is an ancestor of (or equal to) every joint.

        Returns:
            Node index, or None if the joints share no ancestor
        """
        if not joints:
            return None
        candidates = self._ancestors(joints[0])
        others = [set(self._ancestors(joint)) for joint in joints[1:]]
        for candidate in candidates:
            if all(candidate in ancestors for ancestors in others):
                return candidate
        return None

    def build_skin(self, skin_index: int) -> SkinBinding:
        """
        Bind bones and bind poses for a skin.

        Raises:
            DisjointSkinJointsError: No declared skeleton and no common ancestor
        """
        skins = self.document.skins or []
        if not 0 <= skin_index < len(skins):
            raise DocumentIntegrityError(f"Skin index {skin_index} out of range")
        skin = skins[skin_index]
        binding = SkinBinding(skin.name or f"Skin{skin_index}")

        bind_poses = None
        if skin.inverseBindMatrices is not None:
            accessor = self.resolver.resolve_accessor(skin.inverseBindMatrices, _bind_pose_transform)
            bind_poses = accessor.content.as_matrix4x4s()

        joints = list(skin.joints or [])
        for i, joint_index in enumerate(joints):
            pose = bind_poses[i] if bind_poses is not None and i < len(bind_poses) else None
            binding.add_bone(self.resolve_node(joint_index), pose)

        if skin.skeleton is not None:
            root_index = skin.skeleton
        else:
            root_index = self.find_common_ancestor(joints)
            if root_index is None:
                raise DisjointSkinJointsError(f"Skin {skin_index} joints have no common ancestor")
        binding.root_bone = self.resolve_node(root_index)
        return binding

    # ------------------------------------------------------------------
    # LOD
    # ------------------------------------------------------------------

    def _build_lod_group(self, node, node_obj: SceneNode, lod_ids: List[int],
                         chain: FrozenSet[int]) -> SceneNode:
        """
        Wrap a node and its MSFT_lod alternates in a group node of the same name.

        Tier i is LOD node i with its declared screen coverage (or 1/(i+2));
        the full-detail node follows as the last tier at coverage 0 unless
        far LODs are culled.
        """
        group = SceneNode(node_obj.name)
        node_obj.set_parent(group)

        extras = node.extras if isinstance(node.extras, dict) else {}
        coverages = extras.get(settings.EXT_LOD_SCREEN_COVERAGE) or []

        tiers = []
        for i, lod_index in enumerate(lod_ids):
            lod_node = self.resolve_node(lod_index, chain)
            lod_node.set_parent(group)
            coverage = float(coverages[i]) if i < len(coverages) else 1.0 / (i + 2)
            tiers.append(LodTier(coverage, lod_node.renderers_in_children()))

        if not self.options.cull_far_lod:
            tiers.append(LodTier(0.0, node_obj.renderers_in_children()))

        group.lod_group = LodGroup(tiers)
        self.cache.register_node_name(group.name, group)
        return group
