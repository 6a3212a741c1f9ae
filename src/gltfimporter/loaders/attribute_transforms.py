"""
Attribute Transforms

Converts decoded glTF attribute arrays from glTF's right-handed, Y-up
convention into the host's left-handed convention (X mirrored).

All functions are pure: they return new arrays and never modify input.
Each conversion is its own inverse.
"""

from typing import Callable, Optional

import numpy as np

from ..config.settings import COORDINATE_SPACE_CONVERSION_SCALE, TANGENT_SPACE_CONVERSION_SCALE

_VEC3_SCALE = np.array(COORDINATE_SPACE_CONVERSION_SCALE, dtype='f4')
_VEC4_SCALE = np.array(TANGENT_SPACE_CONVERSION_SCALE, dtype='f4')
_SPACE_MATRIX = np.diag(list(COORDINATE_SPACE_CONVERSION_SCALE) + [1.0]).astype('f4')

# Weight sums closer to zero than this are left unnormalized
WEIGHT_SUM_EPSILON = 1e-6


def convert_vector3_space(values: np.ndarray) -> np.ndarray:
    """Mirror positions/normals (N, 3) across the converted axis."""
    return np.asarray(values, dtype='f4').reshape(-1, 3) * _VEC3_SCALE


def convert_tangent_space(values: np.ndarray) -> np.ndarray:
    """
    Mirror tangents (N, 4).

    The xyz direction is mirrored like a normal and the handedness sign in w
    is negated so bitangents keep pointing the same way.
    """
    return np.asarray(values, dtype='f4').reshape(-1, 4) * _VEC4_SCALE


def flip_texcoord_v(values: np.ndarray) -> np.ndarray:
    """glTF puts the UV origin top-left; the host puts it bottom-left."""
    flipped = np.array(values, dtype='f4').reshape(-1, 2)
    flipped[:, 1] = 1.0 - flipped[:, 1]
    return flipped


def flip_triangle_faces(indices: np.ndarray) -> np.ndarray:
    """Reverse the winding of every triangle (swap first and last index)."""
    flipped = np.array(indices).reshape(-1)
    triangle_count = len(flipped) // 3
    tris = flipped[:triangle_count * 3].reshape(-1, 3)
    tris[:, [0, 2]] = tris[:, [2, 0]]
    return flipped


def normalize_bone_weights(weights: np.ndarray) -> np.ndarray:
    """
    Scale each row of (N, 4) weights so its components sum to 1.

    Rows summing to ~0 are returned unchanged.
    """
    weights = np.array(weights, dtype='f4').reshape(-1, 4)
    sums = weights.sum(axis=1)
    valid = np.abs(sums) > WEIGHT_SUM_EPSILON
    weights[valid] /= sums[valid, None]
    return weights


def convert_translation(value) -> np.ndarray:
    return np.asarray(value, dtype='f4') * _VEC3_SCALE


def convert_rotation(value) -> np.ndarray:
    """
    Convert a glTF quaternion (x, y, z, w).

    Mirroring X flips the handedness of rotations, so the axis is mirrored
    and negated: (x, y, z, w) -> (x, -y, -z, w).
    """
    x, y, z, w = np.asarray(value, dtype='f4')
    return np.array([x, -y, -z, w], dtype='f4')


def convert_matrix4x4_space(matrices: np.ndarray) -> np.ndarray:
    """Change of basis S * M * S for (N, 4, 4) column-vector matrices."""
    matrices = np.asarray(matrices, dtype='f4').reshape(-1, 4, 4)
    return _SPACE_MATRIX @ matrices @ _SPACE_MATRIX


def transform_for_attribute(name: str) -> Optional[Callable[[np.ndarray], np.ndarray]]:
    """
    Conversion to run once after an attribute is decoded.

    Args:
        name: glTF attribute semantic (POSITION, TEXCOORD_0, ...)

    Returns:
        Transform function, or None if the attribute is used as-is
    """
    if name in ("POSITION", "NORMAL"):
        return convert_vector3_space
    if name == "TANGENT":
        return convert_tangent_space
    if name.startswith("TEXCOORD_"):
        return flip_texcoord_v
    if name.startswith("WEIGHTS_"):
        return normalize_bone_weights
    return None


def transform_for_target(name: str) -> Optional[Callable[[np.ndarray], np.ndarray]]:
    """Morph target deltas are all plain 3-vectors, tangents included."""
    if name in ("POSITION", "NORMAL", "TANGENT"):
        return convert_vector3_space
    return None
