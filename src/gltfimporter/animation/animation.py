"""
Animation

Keyframe curves and clips in host form: one float curve per animated
component, with explicit Hermite tangents.
"""

import math
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np


class InterpolationType(Enum):
    """Animation interpolation types."""
    LINEAR = "LINEAR"
    STEP = "STEP"
    CUBICSPLINE = "CUBICSPLINE"


class AnimationTarget(Enum):
    """Animated node properties (glTF channel paths)."""
    TRANSLATION = "translation"
    ROTATION = "rotation"
    SCALE = "scale"
    WEIGHTS = "weights"  # Morph target weights


class WrapMode(Enum):
    ONCE = "once"
    LOOP = "loop"


class Keyframe:
    """
    Single keyframe of a float curve.

    Tangents are slopes (value per second). An infinite tangent on either
    side of a segment holds the left key's value across it.
    """

    def __init__(self, time: float, value: float, in_tangent: float = 0.0, out_tangent: float = 0.0):
        """
        Initialize keyframe.

        Args:
            time: Time in seconds
            value: Value at this time
            in_tangent: Slope arriving at this key
            out_tangent: Slope leaving this key
        """
        self.time = time
        self.value = value
        self.in_tangent = in_tangent
        self.out_tangent = out_tangent

    def __repr__(self):
        return f"Keyframe(t={self.time:.3f}, v={self.value})"


class AnimationCurve:
    """
    Float curve bound to one component of one property.

    Bound by relative path (node names from the clip root, '/'-joined),
    component type ('transform' or 'renderer') and property name, e.g.
    'local_rotation.w' or 'blend_shape.Smile'.
    """

    def __init__(self, relative_path: str, component_type: str, property_name: str,
                 keyframes: Optional[List[Keyframe]] = None):
        self.relative_path = relative_path
        self.component_type = component_type
        self.property_name = property_name
        self.keyframes: List[Keyframe] = keyframes or []

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.relative_path, self.component_type, self.property_name)

    @property
    def duration(self) -> float:
        return self.keyframes[-1].time if self.keyframes else 0.0

    def evaluate(self, time: float) -> Optional[float]:
        """
        Sample the curve at a given time.

        Args:
            time: Time in seconds (clamped to the key range)

        Returns:
            Hermite-interpolated value, or None for an empty curve
        """
        if not self.keyframes:
            return None

        # Clamp time to curve range
        if time <= self.keyframes[0].time:
            return self.keyframes[0].value
        if time >= self.keyframes[-1].time:
            return self.keyframes[-1].value

        # Find surrounding keyframes
        for i in range(len(self.keyframes) - 1):
            k0 = self.keyframes[i]
            k1 = self.keyframes[i + 1]
            if k0.time <= time <= k1.time:
                return self._interpolate(k0, k1, time)

        return self.keyframes[-1].value

    @staticmethod
    def _interpolate(k0: Keyframe, k1: Keyframe, time: float) -> float:
        if math.isinf(k0.out_tangent) or math.isinf(k1.in_tangent):
            return k0.value

        dt = k1.time - k0.time
        if dt <= 0.0:
            return k0.value
        t = (time - k0.time) / dt
        t2 = t * t
        t3 = t2 * t

        h00 = 2 * t3 - 3 * t2 + 1
        h10 = t3 - 2 * t2 + t
        h01 = -2 * t3 + 3 * t2
        h11 = t3 - t2
        return (h00 * k0.value + h10 * dt * k0.out_tangent
                + h01 * k1.value + h11 * dt * k1.in_tangent)

    def __repr__(self):
        return (f"AnimationCurve(path='{self.relative_path}', property='{self.property_name}', "
                f"keyframes={len(self.keyframes)})")


class AnimationClip:
    """
    Complete animation clip with one curve per animated component.
    """

    def __init__(self, name: str):
        """
        Initialize clip.

        Args:
            name: Clip name
        """
        self.name = name
        self.curves: Dict[Tuple[str, str, str], AnimationCurve] = {}
        self.wrap_mode = WrapMode.ONCE
        self.duration: float = 0.0  # Computed from keyframes

    def set_curve(self, curve: AnimationCurve):
        """Add or replace the curve for its (path, component, property)."""
        self.curves[curve.key] = curve
        self.duration = max(self.duration, curve.duration)

    def get_curve(self, relative_path: str, component_type: str, property_name: str) -> Optional[AnimationCurve]:
        return self.curves.get((relative_path, component_type, property_name))

    def sample_all(self, time: float) -> dict:
        """
        Sample all curves at a given time.

        Returns:
            Dictionary mapping (path, component, property) -> value
        """
        return {key: curve.evaluate(time) for key, curve in self.curves.items()}

    def __repr__(self):
        return f"AnimationClip(name='{self.name}', duration={self.duration:.2f}s, curves={len(self.curves)})"


def ensure_quaternion_continuity(values: np.ndarray, *tangents: np.ndarray):
    """
    Flip quaternion keys so consecutive keys lie in the same hemisphere.

    q and -q are the same rotation, but interpolating between keys of
    opposite sign takes the long way round. Tangent arrays are flipped
    along with their keys. All arrays are (N, 4) and modified in place.
    """
    for i in range(1, len(values)):
        if float(np.dot(values[i - 1], values[i])) < 0.0:
            values[i] = -values[i]
            for tangent in tangents:
                tangent[i] = -tangent[i]
