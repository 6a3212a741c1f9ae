"""
Texture Transform

Represents the KHR_texture_transform extension for glTF 2.0.
Allows a material texture slot to be offset, scaled, and rotated, and to
read from a different texture coordinate set.
"""

from typing import Optional, Tuple

import numpy as np

from ..config import settings


class TextureTransform:
    """
    Texture coordinate transformation (KHR_texture_transform).

    Offset, scale and rotation are kept as declared; the host shader applies
    them as uv' = (transform * vec3(uv, 1.0)).xy.

    glTF spec: https://github.com/KhronosGroup/glTF/tree/main/extensions/2.0/Khronos/KHR_texture_transform
    """

    def __init__(
        self,
        offset: Tuple[float, float] = (0.0, 0.0),
        scale: Tuple[float, float] = (1.0, 1.0),
        rotation: float = 0.0,
        texcoord: Optional[int] = None
    ):
        """
        Initialize texture transform.

        Args:
            offset: Translation offset (U, V) - default (0, 0)
            scale: Scale factors (U, V) - default (1, 1)
            rotation: Rotation in radians (counter-clockwise) - default 0
            texcoord: Texture coordinate set override (None keeps the slot's own)
        """
        self.offset = np.array(offset, dtype='f4')
        self.scale = np.array(scale, dtype='f4')
        self.rotation = float(rotation)
        self.texcoord = texcoord

    @classmethod
    def from_texture_info(cls, texture_info, extensions_used) -> Optional['TextureTransform']:
        """
        Read the transform from a texture info, if the document enables it.

        Args:
            texture_info: glTF TextureInfo (baseColorTexture, normalTexture, ...)
            extensions_used: The document's extensionsUsed list

        Returns:
            TextureTransform, or None when absent or not declared by the document
        """
        if settings.EXT_TEXTURE_TRANSFORM not in (extensions_used or []):
            return None

        extensions = getattr(texture_info, 'extensions', None)
        if not extensions or settings.EXT_TEXTURE_TRANSFORM not in extensions:
            return None

        # Extension data is a dict, not an object
        data = extensions[settings.EXT_TEXTURE_TRANSFORM] or {}
        return cls(
            offset=tuple(data.get('offset', [0.0, 0.0])),
            scale=tuple(data.get('scale', [1.0, 1.0])),
            rotation=data.get('rotation', 0.0),
            texcoord=data.get('texCoord'),
        )

    def get_matrix(self) -> np.ndarray:
        """
        3x3 transformation matrix (scale, then rotate, then translate).

        [ cos(r)*sx   sin(r)*sy  ox ]
        [ -sin(r)*sx  cos(r)*sy  oy ]
        [     0           0       1 ]
        """
        c = np.cos(self.rotation)
        s = np.sin(self.rotation)
        sx, sy = self.scale
        ox, oy = self.offset
        return np.array([
            [c * sx, s * sy, ox],
            [-s * sx, c * sy, oy],
            [0.0, 0.0, 1.0]
        ], dtype='f4')

    def apply(self, uvs: np.ndarray) -> np.ndarray:
        """Transform an (N, 2) array of texture coordinates."""
        uvs = np.asarray(uvs, dtype='f4').reshape(-1, 2)
        homogeneous = np.hstack([uvs, np.ones((len(uvs), 1), dtype='f4')])
        return (homogeneous @ self.get_matrix().T)[:, :2]

    def __repr__(self):
        return (f"TextureTransform(offset={tuple(self.offset)}, "
                f"scale={tuple(self.scale)}, rotation={self.rotation:.3f})")
