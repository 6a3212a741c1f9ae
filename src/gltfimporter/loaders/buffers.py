"""
Buffer & Accessor Resolver

Turns buffer indices into seekable streams and accessor indices into typed
numpy arrays. Streams are opened once per buffer; accessor contents are
decoded lazily, once, and cached together with their post-decode transform.
"""

import base64
import io
import logging
from typing import BinaryIO, Callable, Optional

import numpy as np
import pygltflib

from .glb import read_exact, seek_to_binary_chunk
from ..errors import DocumentIntegrityError, TruncatedAssetError

logger = logging.getLogger(__name__)

# glTF componentType -> numpy dtype
COMPONENT_DTYPES = {
    5120: np.int8,     # BYTE
    5121: np.uint8,    # UNSIGNED_BYTE
    5122: np.int16,    # SHORT
    5123: np.uint16,   # UNSIGNED_SHORT
    5125: np.uint32,   # UNSIGNED_INT
    5126: np.float32,  # FLOAT
}

COMPONENT_COUNTS = {
    'SCALAR': 1,
    'VEC2': 2,
    'VEC3': 3,
    'VEC4': 4,
    'MAT2': 4,
    'MAT3': 9,
    'MAT4': 16,
}


def decode_data_uri(uri: Optional[str]) -> Optional[bytes]:
    """
    Decode an embedded base64 data URI.

    Returns:
        Raw bytes, or None if the URI is not an embedded base64 payload
    """
    if not uri or not uri.startswith("data:"):
        return None
    header, _, payload = uri.partition(",")
    if not header.endswith(";base64"):
        return None
    return base64.b64decode(payload)


def normalize_components(array: np.ndarray) -> np.ndarray:
    """
    Map normalized integer components to floats.

    Signed types map to [-1, 1] with the most negative value clamped,
    unsigned types map to [0, 1].
    """
    info = np.iinfo(array.dtype)
    values = array.astype('f4') / float(info.max)
    if info.min < 0:
        values = np.maximum(values, -1.0)
    return values


class BufferCacheEntry:
    """An open buffer stream and where the buffer's bytes start in it."""

    def __init__(self, stream: BinaryIO, chunk_offset: int = 0, owns_stream: bool = True):
        self.stream = stream
        self.chunk_offset = chunk_offset
        self.owns_stream = owns_stream


class AccessorContent:
    """
    Decoded accessor values.

    Holds a (count, components) array; views reshape it to the layout the
    caller expects.
    """

    def __init__(self, array: np.ndarray):
        self.array = array

    def __len__(self):
        return len(self.array)

    def as_floats(self) -> np.ndarray:
        return np.asarray(self.array, dtype='f4').reshape(-1)

    def as_vec2s(self) -> np.ndarray:
        return np.asarray(self.array, dtype='f4').reshape(-1, 2)

    def as_vec3s(self) -> np.ndarray:
        return np.asarray(self.array, dtype='f4').reshape(-1, 3)

    def as_vec4s(self) -> np.ndarray:
        """(N, 4); RGB colors are padded with alpha 1."""
        values = np.asarray(self.array, dtype='f4')
        if values.ndim == 2 and values.shape[1] == 3:
            values = np.hstack([values, np.ones((len(values), 1), dtype='f4')])
        return values.reshape(-1, 4)

    def as_uints(self) -> np.ndarray:
        return np.asarray(self.array).reshape(-1).astype(np.uint32)

    def as_matrix4x4s(self) -> np.ndarray:
        """
        (N, 4, 4) matrices for column vectors.

        glTF stores matrices column-major, so a row-major reshape yields the
        transpose. Already-transformed content is returned as stored.
        """
        values = np.asarray(self.array, dtype='f4')
        if values.ndim == 3:
            return values
        return values.reshape(-1, 4, 4).transpose(0, 2, 1)


class AttributeAccessor:
    """
    Lazy handle on one accessor.

    The transform runs exactly once, right after the first decode.
    """

    def __init__(self, resolver: "BufferResolver", accessor_index: int,
                 transform: Optional[Callable[[np.ndarray], np.ndarray]] = None):
        self.resolver = resolver
        self.accessor_index = accessor_index
        self.transform = transform
        self.definition = resolver.document.accessors[accessor_index]

        # Where the backing buffer lives (None for zero-initialized accessors)
        self.stream: Optional[BinaryIO] = None
        self.offset = 0
        if self.definition.bufferView is not None:
            view = resolver.get_buffer_view(self.definition.bufferView)
            entry = resolver.resolve_buffer(view.buffer)
            self.stream = entry.stream
            self.offset = entry.chunk_offset

        self._content: Optional[AccessorContent] = None

    @property
    def count(self) -> int:
        return self.definition.count or 0

    @property
    def is_decoded(self) -> bool:
        return self._content is not None

    @property
    def content(self) -> AccessorContent:
        if self._content is None:
            array = self.resolver.decode_accessor(self.accessor_index)
            if self.transform is not None:
                array = self.transform(array)
            self._content = AccessorContent(array)
        return self._content


class BufferResolver:
    """
    Resolves buffers, buffer views and accessors of one document.

    Buffers without a URI come from the GLB binary chunks, data URIs are
    decoded in memory and anything else is opened through the data loader.
    """

    def __init__(self, document: pygltflib.GLTF2, cache, data_loader=None,
                 glb_stream: Optional[BinaryIO] = None, glb_start: int = 0, progress=None):
        """
        Initialize resolver.

        Args:
            document: Parsed glTF document
            cache: AssetCache receiving buffer entries
            data_loader: Supplies streams for external URIs
            glb_stream: GLB stream the document came from, if any
            glb_start: Offset of the GLB header inside glb_stream
            progress: ProgressReporter notified per constructed buffer
        """
        self.document = document
        self.cache = cache
        self.data_loader = data_loader
        self.glb_stream = glb_stream
        self.glb_start = glb_start
        self.progress = progress

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def resolve_buffer(self, buffer_index: int) -> BufferCacheEntry:
        """
        Open a buffer's stream on first use.

        Raises:
            DocumentIntegrityError: Bad index, or a URI-less buffer outside a GLB
        """
        buffers = self.document.buffers or []
        if buffer_index is None or not 0 <= buffer_index < len(buffers):
            raise DocumentIntegrityError(f"Buffer index {buffer_index} out of range")

        entry = self.cache.get("buffers", buffer_index)
        if entry is not None:
            return entry

        buffer = buffers[buffer_index]
        if buffer.uri is None:
            if self.glb_stream is None:
                raise DocumentIntegrityError(f"Buffer {buffer_index} has no URI and no GLB binary chunk")
            offset = seek_to_binary_chunk(self.glb_stream, buffer_index, self.glb_start)
            entry = BufferCacheEntry(self.glb_stream, offset, owns_stream=False)
        else:
            data = decode_data_uri(buffer.uri)
            if data is not None:
                entry = BufferCacheEntry(io.BytesIO(data), 0)
            else:
                if self.data_loader is None:
                    raise DocumentIntegrityError(f"No data loader for external buffer '{buffer.uri}'")
                entry = BufferCacheEntry(self.data_loader.load_stream(buffer.uri), 0)

        self.cache.store("buffers", buffer_index, entry)
        logger.debug("Buffer %d resolved (offset %d)", buffer_index, entry.chunk_offset)
        if self.progress is not None:
            self.progress.buffer_loaded()
        return entry

    def get_buffer_view(self, view_index: int):
        views = self.document.bufferViews or []
        if view_index is None or not 0 <= view_index < len(views):
            raise DocumentIntegrityError(f"BufferView index {view_index} out of range")
        return views[view_index]

    def read_bytes(self, view_index: int, byte_offset: int, size: int) -> bytes:
        """
        Read size bytes starting byte_offset bytes into a buffer view.

        Raises:
            TruncatedAssetError: If the read runs past the end of the view
        """
        view = self.get_buffer_view(view_index)
        if byte_offset + size > (view.byteLength or 0):
            raise TruncatedAssetError(
                f"Read of {size} bytes at {byte_offset} overruns bufferView {view_index} "
                f"({view.byteLength} bytes)")
        entry = self.resolve_buffer(view.buffer)
        entry.stream.seek(entry.chunk_offset + (view.byteOffset or 0) + byte_offset)
        return read_exact(entry.stream, size)

    def read_buffer_view(self, view_index: int) -> bytes:
        """Whole contents of a buffer view (used for embedded images)."""
        view = self.get_buffer_view(view_index)
        return self.read_bytes(view_index, 0, view.byteLength)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def resolve_accessor(self, accessor_index: int,
                         transform: Optional[Callable[[np.ndarray], np.ndarray]] = None) -> AttributeAccessor:
        """
        Create a lazy accessor handle.

        Args:
            accessor_index: Index into document.accessors
            transform: Conversion applied once after decoding

        Raises:
            DocumentIntegrityError: If the index is out of range
        """
        accessors = self.document.accessors or []
        if accessor_index is None or not 0 <= accessor_index < len(accessors):
            raise DocumentIntegrityError(f"Accessor index {accessor_index} out of range")
        return AttributeAccessor(self, accessor_index, transform)

    def _read_elements(self, view_index: int, byte_offset: int, count: int,
                       dtype, components: int) -> np.ndarray:
        view = self.get_buffer_view(view_index)
        component_size = np.dtype(dtype).itemsize
        element_size = component_size * components
        stride = view.byteStride or 0

        if count == 0:
            return np.zeros((0, components), dtype=dtype)

        if stride == 0 or stride == element_size:
            # Tightly packed
            data = self.read_bytes(view_index, byte_offset, count * element_size)
            array = np.frombuffer(data, dtype=dtype)
        else:
            # Interleaved: read the whole span, then pick each element out of it
            span = (count - 1) * stride + element_size
            data = self.read_bytes(view_index, byte_offset, span)
            raw = np.frombuffer(data, dtype=np.uint8)
            rows = np.lib.stride_tricks.as_strided(raw, shape=(count, element_size), strides=(stride, 1))
            array = np.ascontiguousarray(rows).view(dtype)

        return array.reshape(count, components).copy()

    def decode_accessor(self, accessor_index: int) -> np.ndarray:
        """
        Decode an accessor into a (count, components) array.

        Float and normalized data come back as float32; integer data keeps
        its component type.
        """
        accessor = self.document.accessors[accessor_index]
        if accessor.componentType not in COMPONENT_DTYPES:
            raise DocumentIntegrityError(
                f"Accessor {accessor_index} has unknown componentType {accessor.componentType}")
        if accessor.type not in COMPONENT_COUNTS:
            raise DocumentIntegrityError(f"Accessor {accessor_index} has unknown type {accessor.type}")

        dtype = COMPONENT_DTYPES[accessor.componentType]
        components = COMPONENT_COUNTS[accessor.type]
        count = accessor.count or 0

        if accessor.bufferView is not None:
            array = self._read_elements(accessor.bufferView, accessor.byteOffset or 0,
                                        count, dtype, components)
        else:
            array = np.zeros((count, components), dtype=dtype)

        if accessor.sparse is not None:
            self._apply_sparse(accessor, array, components)

        if accessor.normalized and np.issubdtype(array.dtype, np.integer):
            array = normalize_components(array)
        return array

    def _apply_sparse(self, accessor, array: np.ndarray, components: int):
        """Overwrite the elements named by a sparse accessor in place."""
        sparse = accessor.sparse
        if not sparse.count:
            return

        indices_info = sparse.indices
        index_dtype = COMPONENT_DTYPES.get(indices_info.componentType)
        if index_dtype is None:
            raise DocumentIntegrityError(f"Sparse indices use componentType {indices_info.componentType}")
        indices = self._read_elements(indices_info.bufferView, indices_info.byteOffset or 0,
                                      sparse.count, index_dtype, 1).reshape(-1)

        values_info = sparse.values
        values = self._read_elements(values_info.bufferView, values_info.byteOffset or 0,
                                     sparse.count, array.dtype, components)

        if len(indices) and indices.max() >= len(array):
            raise DocumentIntegrityError("Sparse index beyond accessor count")
        array[indices.astype(np.int64)] = values
