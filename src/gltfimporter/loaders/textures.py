"""
Texture Builder

Decodes glTF images with Pillow and pairs them with sampler state.
Each image is decoded once and shared by every texture that uses it.
"""

import io
import logging
import math
from enum import Enum
from typing import Optional

import numpy as np
from PIL import Image

from .buffers import decode_data_uri
from ..errors import DocumentIntegrityError

logger = logging.getLogger(__name__)


class FilterMode(Enum):
    POINT = "point"
    BILINEAR = "bilinear"
    TRILINEAR = "trilinear"


class WrapMode(Enum):
    CLAMP = "clamp"
    REPEAT = "repeat"
    MIRROR = "mirror"


# glTF sampler minFilter -> host filter
MIN_FILTER_MODES = {
    9728: FilterMode.POINT,      # NEAREST
    9984: FilterMode.POINT,      # NEAREST_MIPMAP_NEAREST
    9985: FilterMode.POINT,      # LINEAR_MIPMAP_NEAREST
    9729: FilterMode.BILINEAR,   # LINEAR
    9986: FilterMode.BILINEAR,   # NEAREST_MIPMAP_LINEAR
    9987: FilterMode.TRILINEAR,  # LINEAR_MIPMAP_LINEAR
}

# glTF sampler wrapS -> host wrap
WRAP_MODES = {
    33071: WrapMode.CLAMP,   # CLAMP_TO_EDGE
    10497: WrapMode.REPEAT,  # REPEAT
    33648: WrapMode.MIRROR,  # MIRRORED_REPEAT
}


def filter_mode_for(min_filter: Optional[int]) -> FilterMode:
    if min_filter is None:
        return FilterMode.TRILINEAR
    mode = MIN_FILTER_MODES.get(min_filter)
    if mode is None:
        logger.warning("Unsupported sampler minFilter %s, using trilinear", min_filter)
        return FilterMode.TRILINEAR
    return mode


def wrap_mode_for(wrap_s: Optional[int]) -> WrapMode:
    if wrap_s is None:
        return WrapMode.REPEAT
    mode = WRAP_MODES.get(wrap_s)
    if mode is None:
        logger.warning("Unsupported sampler wrapS %s, using repeat", wrap_s)
        return WrapMode.REPEAT
    return mode


def mip_count_for(width: int, height: int) -> int:
    """Length of a full mip chain down to 1x1."""
    return int(math.floor(math.log2(max(width, height, 1)))) + 1


class ImageCacheEntry:
    """
    Decoded image.

    Pixels are RGBA uint8 with row 0 at the top. They are released
    (readable becomes False) when no CPU copy is kept.
    """

    def __init__(self, pixels: Optional[np.ndarray], width: int, height: int, name: str = "",
                 mip_count: int = 1):
        self.pixels = pixels
        self.width = width
        self.height = height
        self.name = name
        self.mip_count = mip_count

    @property
    def readable(self) -> bool:
        return self.pixels is not None

    def release_pixels(self):
        self.pixels = None

    def __repr__(self):
        return f"ImageCacheEntry(name='{self.name}', size={self.width}x{self.height})"


class TextureCacheEntry:
    """
    A glTF texture: its image plus host sampler state.

    Images can be shared between textures, so whether texels are linear
    rather than sRGB is recorded here.
    """

    def __init__(self, definition, image: Optional[ImageCacheEntry],
                 filter_mode: FilterMode = FilterMode.TRILINEAR, wrap_mode: WrapMode = WrapMode.REPEAT,
                 is_linear: bool = False):
        self.definition = definition
        self.image = image
        self.is_linear = is_linear
        self.filter_mode = filter_mode
        self.wrap_mode = wrap_mode

    @property
    def readable(self) -> bool:
        return self.image is not None and self.image.readable


class TextureBuilder:
    """Builds images and textures for one import session."""

    def __init__(self, document, cache, resolver, options, progress=None):
        """
        Initialize builder.

        Args:
            document: Parsed glTF document
            cache: AssetCache with images, image_streams and textures tables
            resolver: BufferResolver for bufferView-backed images
            options: ImportOptions (mipmaps, CPU copy, data loader)
            progress: ProgressReporter notified per decoded image
        """
        self.document = document
        self.cache = cache
        self.resolver = resolver
        self.options = options
        self.progress = progress

    def _image_bytes(self, image_index: int, image) -> bytes:
        if image.bufferView is not None:
            return self.resolver.read_buffer_view(image.bufferView)

        data = decode_data_uri(image.uri)
        if data is not None:
            return data

        if not image.uri:
            raise DocumentIntegrityError(f"Image {image_index} has neither a URI nor a bufferView")
        if self.resolver.data_loader is None:
            raise DocumentIntegrityError(f"No data loader for external image '{image.uri}'")

        stream = self.cache.image_streams[image_index]
        if stream is None:
            stream = self.cache.store("image_streams", image_index,
                                      self.resolver.data_loader.load_stream(image.uri))
        stream.seek(0)
        return stream.read()

    def build_image(self, image_index: int) -> ImageCacheEntry:
        """
        Decode an image once.

        Args:
            image_index: Index into document.images

        Returns:
            The shared ImageCacheEntry
        """
        images = self.document.images or []
        if image_index is None or not 0 <= image_index < len(images):
            raise DocumentIntegrityError(f"Image index {image_index} out of range")

        entry = self.cache.get("images", image_index)
        if entry is not None:
            return entry

        image = images[image_index]
        data = self._image_bytes(image_index, image)
        with Image.open(io.BytesIO(data)) as decoded:
            pixels = np.asarray(decoded.convert('RGBA'), dtype=np.uint8)

        height, width = pixels.shape[:2]
        mip_count = mip_count_for(width, height) if self.options.generate_mipmaps else 1
        entry = ImageCacheEntry(pixels, width, height, image.name or f"Image{image_index}", mip_count)
        if not self.options.keep_cpu_copy_of_texture:
            entry.release_pixels()

        self.cache.store("images", image_index, entry)
        logger.debug("Decoded image %d (%dx%d)", image_index, width, height)
        if self.progress is not None:
            self.progress.texture_loaded()
        return entry

    def build_texture(self, texture_index: int, is_linear: bool = False) -> TextureCacheEntry:
        """
        Build a texture and map its sampler to host filter/wrap modes.

        Args:
            texture_index: Index into document.textures
            is_linear: Whether texel data is linear rather than sRGB

        Returns:
            The shared TextureCacheEntry
        """
        textures = self.document.textures or []
        if texture_index is None or not 0 <= texture_index < len(textures):
            raise DocumentIntegrityError(f"Texture index {texture_index} out of range")

        entry = self.cache.get("textures", texture_index)
        if entry is not None:
            return entry

        texture = textures[texture_index]
        image = None
        if texture.source is not None:
            image = self.build_image(texture.source)
        else:
            logger.warning("Texture %d has no image source", texture_index)

        filter_mode = FilterMode.TRILINEAR
        wrap_mode = WrapMode.REPEAT
        if texture.sampler is not None:
            samplers = self.document.samplers or []
            if not 0 <= texture.sampler < len(samplers):
                raise DocumentIntegrityError(f"Sampler index {texture.sampler} out of range")
            sampler = samplers[texture.sampler]
            filter_mode = filter_mode_for(sampler.minFilter)
            wrap_mode = wrap_mode_for(sampler.wrapS)

        entry = TextureCacheEntry(texture, image, filter_mode, wrap_mode, is_linear)
        return self.cache.store("textures", texture_index, entry)
