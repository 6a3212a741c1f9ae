"""
Animation System

Keyframe curves, clips and skin bindings for imported glTF models.
"""

from .animation import (
    AnimationClip,
    AnimationCurve,
    AnimationTarget,
    InterpolationType,
    Keyframe,
    WrapMode,
)
from .skin import SkinBinding
from .clip_builder import ClipBuilder

__all__ = [
    'AnimationClip',
    'AnimationCurve',
    'AnimationTarget',
    'InterpolationType',
    'Keyframe',
    'WrapMode',
    'SkinBinding',
    'ClipBuilder',
]
