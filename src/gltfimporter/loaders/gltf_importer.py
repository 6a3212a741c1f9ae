"""
glTF Importer

Import session for one glTF document. Owns the asset cache and the
builders, guards against concurrent top-level calls, and exposes scene
loading as a generator so a host can spread the work over frames.
"""

import logging
import threading
import time
from pathlib import Path
from typing import BinaryIO, Generator, Optional

import pygltflib

from . import glb
from .buffers import BufferResolver
from .data_loader import FileLoader
from .material import MaterialBuilder, MaterialCacheEntry
from .mesh_builder import MeshBuilder, MeshPayload
from .node_builder import NodeBuilder
from .textures import TextureBuilder, TextureCacheEntry
from ..animation.animation import WrapMode
from ..animation.clip_builder import ClipBuilder
from ..config import settings
from ..config.import_options import ImportOptions
from ..core.asset_cache import AssetCache
from ..core.memory import MemoryChecker
from ..core.progress import ImportProgress, ImportStatistics, ProgressReporter
from ..errors import ConcurrentImportError, DocumentIntegrityError
from ..scene.scene_node import AnimationComponent, SceneNode, SceneSink

logger = logging.getLogger(__name__)


class GltfImporter:
    """
    Imports one glTF document into a SceneNode hierarchy.

    Every buffer, accessor, mesh, material, texture, node and clip is
    built at most once per importer and shared afterwards. Only one
    top-level call may run at a time.

    Usage:
        importer = GltfImporter.from_file("models/robot.glb")
        root = importer.load_scene_sync()
    """

    def __init__(self, document: Optional[pygltflib.GLTF2] = None, glb_stream: Optional[BinaryIO] = None,
                 options: Optional[ImportOptions] = None, sink: Optional[SceneSink] = None,
                 document_uri: Optional[str] = None, glb_start: int = 0):
        """
        Initialize importer.

        Args:
            document: Parsed document (or None to load document_uri lazily)
            glb_stream: GLB stream the document was parsed from, for URI-less buffers
            options: Import options (defaults when None)
            sink: Host sink notified per constructed node
            document_uri: URI of the document, loaded through the data loader
            glb_start: Offset of the GLB header inside glb_stream
        """
        if document is None and document_uri is None:
            raise ValueError("Either a document or a document URI is required")

        self.options = options or ImportOptions()
        self.data_loader = self.options.data_loader or FileLoader()
        self.sink = sink or SceneSink()
        self.document = document
        self.document_uri = document_uri
        self.glb_stream = glb_stream
        self.glb_start = glb_start
        self._owns_glb_stream = False

        self.progress = ProgressReporter(self.options.progress)
        self.statistics = ImportStatistics()
        self.memory_checker = MemoryChecker(self.options.low_memory_threshold_mb)

        self.cache: Optional[AssetCache] = None
        self.last_loaded_scene: Optional[SceneNode] = None
        self.disposed = False

        self._lock = threading.Lock()
        self._is_running = False

        if self.document is not None:
            self._create_builders()

    @classmethod
    def from_file(cls, path, options: Optional[ImportOptions] = None,
                  sink: Optional[SceneSink] = None) -> "GltfImporter":
        """
        Importer for a .gltf or .glb file; the file is read on first use.

        Relative URIs inside the document resolve against the file's directory
        unless the options carry their own data loader.
        """
        path = Path(path)
        options = options or ImportOptions()
        if options.data_loader is None:
            options.data_loader = FileLoader(path.parent)
        return cls(options=options, sink=sink, document_uri=path.name)

    @classmethod
    def from_glb_stream(cls, stream: BinaryIO, options: Optional[ImportOptions] = None,
                        sink: Optional[SceneSink] = None) -> "GltfImporter":
        """Importer for an already open, seekable GLB stream."""
        start = stream.tell()
        document = glb.parse_document(stream, start)
        return cls(document, glb_stream=stream, options=options, sink=sink, glb_start=start)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._is_running

    @property
    def status(self) -> ImportProgress:
        return self.progress.status.snapshot()

    def _begin(self, operation: str):
        with self._lock:
            if self._is_running:
                raise ConcurrentImportError(f"Cannot {operation} while the importer is already running")
            self._is_running = True

    def _end(self):
        with self._lock:
            self._is_running = False

    def _check_memory(self):
        if self.options.abort_on_low_memory:
            self.memory_checker.throw_if_out_of_memory()

    def _ensure_document(self):
        """Load and parse the document on first use."""
        if self.disposed:
            raise DocumentIntegrityError("Importer has been disposed")
        if self.document is not None:
            return

        start = time.perf_counter()
        stream = self.data_loader.load_stream(self.document_uri)
        if glb.is_glb(stream):
            self.glb_start = stream.tell()
            self.document = glb.parse_document(stream, self.glb_start)
            self.glb_stream = stream
            self._owns_glb_stream = True
        else:
            try:
                self.document = glb.parse_json(stream.read().decode("utf-8"))
            finally:
                stream.close()

        self.progress.mark_downloaded()
        logger.info("Loaded document '%s' in %.3fs", self.document_uri, time.perf_counter() - start)
        self._create_builders()

    def _create_builders(self):
        self.cache = AssetCache(self.document)
        self.resolver = BufferResolver(self.document, self.cache, self.data_loader,
                                       self.glb_stream, self.glb_start, self.progress)
        self.textures = TextureBuilder(self.document, self.cache, self.resolver, self.options, self.progress)
        self.materials = MaterialBuilder(self.document, self.cache, self.textures, self.options)
        self.meshes = MeshBuilder(self.document, self.cache, self.resolver, self.options,
                                  self.statistics, self.materials)
        self.nodes = NodeBuilder(self.document, self.cache, self.resolver, self.meshes,
                                 self.options, self.progress, self.sink)
        self.clips = ClipBuilder(self.document, self.cache, self.resolver, self.nodes)

    # ------------------------------------------------------------------
    # Scenes
    # ------------------------------------------------------------------

    def _scene_node_count(self, scene) -> int:
        """Nodes reachable from the scene roots through children and LODs."""
        pending = list(scene.nodes or [])
        seen = set()
        while pending:
            index = pending.pop(0)
            if index in seen or not 0 <= index < len(self.document.nodes or []):
                continue
            seen.add(index)
            node = self.document.nodes[index]
            pending.extend(node.children or [])
            pending.extend(self.nodes.lod_ids(node))
        return len(seen)

    def _select_scene(self, scene_index: int):
        scenes = self.document.scenes or []
        if scene_index is None or scene_index < 0:
            scene_index = self.document.scene if self.document.scene is not None else 0
        if not 0 <= scene_index < len(scenes):
            raise DocumentIntegrityError(f"Scene index {scene_index} out of range ({len(scenes)} scenes)")
        return scenes[scene_index]

    def load_scene(self, scene_parent: Optional[SceneNode] = None,
                   scene_index: int = -1) -> Generator:
        """
        Import a scene step by step.

        The generator yields after every top-level node and every
        animation clip; its return value is the scene root. Nothing runs
        (and no concurrency check happens) until the first step.

        Args:
            scene_parent: Node to attach the scene's top-level nodes to
                (a new root named after the scene when None)
            scene_index: Scene to import; -1 for the document's default scene

        Raises:
            ConcurrentImportError: If another top-level call is running
            LowMemoryError: At a checkpoint, if memory runs low
        """
        self._begin("load a scene")
        try:
            self._ensure_document()
            self._check_memory()

            scene = self._select_scene(scene_index)
            self.progress.add_totals(nodes=self._scene_node_count(scene),
                                     textures=len(self.document.textures or []),
                                     buffers=len(self.document.buffers or []))

            root = scene_parent if scene_parent is not None else \
                SceneNode(scene.name or settings.DEFAULT_SCENE_NAME)
            if scene_parent is not None:
                # Nodes already under the parent count as placed
                for existing in root.iter_descendants():
                    if existing is not root and existing.name not in self.cache.node_by_name:
                        self.cache.register_node_name(existing.name, existing)

            start = time.perf_counter()
            logger.info("Importing scene '%s' (%d root nodes)", root.name, len(scene.nodes or []))

            for node_index in scene.nodes or []:
                node = self.nodes.resolve_node(node_index)
                node.set_parent(root)
                yield node
                self._check_memory()

            animations = self.document.animations or []
            if animations:
                if root.animation is None:
                    root.animation = AnimationComponent()
                for animation_index in range(len(animations)):
                    clip = self.clips.build_clip(animation_index, root)
                    clip.wrap_mode = WrapMode.LOOP
                    root.animation.add_clip(clip, clip.name)
                    yield clip
                    self._check_memory()

            self.last_loaded_scene = root
            logger.info("Imported scene '%s' in %.3fs (%d vertices, %d triangles)",
                        root.name, time.perf_counter() - start,
                        self.statistics.vertex_count, self.statistics.triangle_count)
            return root
        finally:
            self._end()

    def load_scene_sync(self, scene_parent: Optional[SceneNode] = None, scene_index: int = -1) -> SceneNode:
        """Run load_scene to completion and return the scene root."""
        steps = self.load_scene(scene_parent, scene_index)
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value

    # ------------------------------------------------------------------
    # Individual resources
    # ------------------------------------------------------------------

    def load_mesh(self, mesh_index: int) -> MeshPayload:
        """Build one mesh (and its materials) outside of a scene import."""
        self._begin("load a mesh")
        try:
            self._ensure_document()
            self._check_memory()
            self.meshes.construct_mesh_attributes(mesh_index)
            return self.meshes.build_mesh(mesh_index)
        finally:
            self._end()

    def load_material(self, material_index: Optional[int]) -> MaterialCacheEntry:
        """Build one material; None or -1 gives the shared default material."""
        self._begin("load a material")
        try:
            self._ensure_document()
            self._check_memory()
            return self.materials.build_material(material_index)
        finally:
            self._end()

    def load_texture(self, texture_index: int, is_linear: bool = False) -> TextureCacheEntry:
        self._begin("load a texture")
        try:
            self._ensure_document()
            self._check_memory()
            return self.textures.build_texture(texture_index, is_linear)
        finally:
            self._end()

    def get_texture(self, texture_index: int) -> Optional[TextureCacheEntry]:
        """Already built texture, or None."""
        if self.cache is None:
            return None
        return self.cache.get("textures", texture_index)

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def dispose(self):
        """
        Close every stream the importer opened and drop cached resources.

        Raises:
            ConcurrentImportError: If a top-level call is still running
        """
        if self.is_running:
            raise ConcurrentImportError("Cannot dispose while the importer is running")
        if self.disposed:
            return
        if self.cache is not None:
            self.cache.dispose()
        if self._owns_glb_stream and self.glb_stream is not None:
            self.glb_stream.close()
        self.disposed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False
