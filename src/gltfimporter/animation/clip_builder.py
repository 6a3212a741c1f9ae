"""
Clip Builder

Converts glTF animations into AnimationClips bound to the imported
hierarchy by relative path.
"""

import logging
import math
from typing import List, Optional

import numpy as np

from .animation import (AnimationClip, AnimationCurve, AnimationTarget, InterpolationType,
                        Keyframe, ensure_quaternion_continuity)
from ..config import settings
from ..errors import DocumentIntegrityError
from ..loaders.attribute_transforms import convert_vector3_space

logger = logging.getLogger(__name__)

TRANSFORM_COMPONENT = "transform"
RENDERER_COMPONENT = "renderer"

PROPERTY_NAMES = {
    AnimationTarget.TRANSLATION: ["local_position.x", "local_position.y", "local_position.z"],
    AnimationTarget.ROTATION: ["local_rotation.x", "local_rotation.y", "local_rotation.z", "local_rotation.w"],
    AnimationTarget.SCALE: ["local_scale.x", "local_scale.y", "local_scale.z"],
}


class AnimationSamplerCacheEntry:
    """Lazy input (times) and output (values) accessors of one sampler."""

    def __init__(self, input_accessor, output_accessor, interpolation: InterpolationType):
        self.input = input_accessor
        self.output = output_accessor
        self.interpolation = interpolation


class AnimationCacheEntry:
    def __init__(self, sampler_count: int):
        self.samplers: List[Optional[AnimationSamplerCacheEntry]] = [None] * sampler_count
        self.loaded_clip: Optional[AnimationClip] = None


def _convert_rotations(values: np.ndarray) -> np.ndarray:
    """(N, 4) glTF quaternions to host space: (x, -y, -z, w)."""
    return values * np.array([1.0, -1.0, -1.0, 1.0], dtype='f4')


def linear_tangents(times: np.ndarray, values: np.ndarray):
    """
    In/out slopes for linear playback of each key.

    The in tangent of key i is the slope from key i-1, the out tangent the
    slope to key i+1; both are 0 past the ends.
    """
    count = len(times)
    in_tangents = np.zeros_like(values)
    out_tangents = np.zeros_like(values)
    if count > 1:
        dt = np.diff(times).reshape(-1, *([1] * (values.ndim - 1)))
        dt = np.where(dt > 0, dt, 1.0)
        slopes = np.diff(values, axis=0) / dt
        in_tangents[1:] = slopes
        out_tangents[:-1] = slopes
    return in_tangents, out_tangents


class ClipBuilder:
    """
    Builds animation clips for one import session.

    Each clip is built once; channels are resolved against nodes built by
    the node builder.
    """

    def __init__(self, document, cache, resolver, node_builder):
        """
        Initialize builder.

        Args:
            document: Parsed glTF document
            cache: AssetCache with the animations table
            resolver: BufferResolver for sampler accessors
            node_builder: Resolves channel target nodes
        """
        self.document = document
        self.cache = cache
        self.resolver = resolver
        self.node_builder = node_builder

    def build_samplers(self, animation_index: int) -> AnimationCacheEntry:
        """Create accessor handles for the samplers channels refer to."""
        animation = self.document.animations[animation_index]
        entry = self.cache.get("animations", animation_index)
        if entry is None:
            entry = self.cache.store("animations", animation_index,
                                     AnimationCacheEntry(len(animation.samplers or [])))

        for channel in animation.channels or []:
            sampler_index = channel.sampler
            if sampler_index is None or not 0 <= sampler_index < len(entry.samplers):
                raise DocumentIntegrityError(
                    f"Animation {animation_index} channel refers to sampler {sampler_index}")
            if entry.samplers[sampler_index] is not None:
                continue
            sampler = animation.samplers[sampler_index]
            interpolation = InterpolationType(sampler.interpolation or "LINEAR")
            entry.samplers[sampler_index] = AnimationSamplerCacheEntry(
                self.resolver.resolve_accessor(sampler.input),
                self.resolver.resolve_accessor(sampler.output),
                interpolation)
        return entry

    def build_clip(self, animation_index: int, root) -> AnimationClip:
        """
        Build (or fetch) the clip for an animation.

        Args:
            animation_index: Index into document.animations
            root: Node the clip's relative paths start from

        Returns:
            The shared AnimationClip
        """
        animations = self.document.animations or []
        if not 0 <= animation_index < len(animations):
            raise DocumentIntegrityError(f"Animation index {animation_index} out of range")

        entry = self.cache.get("animations", animation_index)
        if entry is not None and entry.loaded_clip is not None:
            return entry.loaded_clip

        entry = self.build_samplers(animation_index)
        animation = animations[animation_index]
        clip = AnimationClip(animation.name or settings.ANIMATION_NAME_FORMAT.format(animation_index))

        for channel in animation.channels or []:
            target = channel.target
            if target is None or target.node is None:
                # Legal, but animates nothing
                continue

            node = self.node_builder.resolve_node(target.node)
            try:
                relative_path = node.relative_path_from(root)
            except ValueError:
                logger.warning("Animation %d targets node '%s' outside the scene root", animation_index, node.name)
                continue

            try:
                path = AnimationTarget(target.path)
            except ValueError:
                logger.warning("Cannot read glTF animation path '%s'", target.path)
                continue

            sampler = entry.samplers[channel.sampler]
            self._add_channel(clip, relative_path, path, sampler, target.node)

        # Cached only once every channel is in
        entry.loaded_clip = clip
        logger.debug("Built clip '%s' with %d curves", clip.name, len(clip.curves))
        return clip

    def _morph_target_count(self, node_index: int, values_per_key: int) -> int:
        node = self.document.nodes[node_index]
        if node.mesh is not None:
            mesh = self.document.meshes[node.mesh]
            if mesh.primitives and mesh.primitives[0].targets:
                return len(mesh.primitives[0].targets)
            weights = getattr(mesh, "weights", None)
            if weights:
                return len(weights)
        return values_per_key

    def _add_channel(self, clip: AnimationClip, relative_path: str, path: AnimationTarget,
                     sampler: AnimationSamplerCacheEntry, node_index: int):
        times = sampler.input.content.as_floats()
        frame_count = len(times)
        cubic = sampler.interpolation == InterpolationType.CUBICSPLINE
        samples_per_key = 3 if cubic else 1

        if path == AnimationTarget.WEIGHTS:
            raw = sampler.output.content.as_floats()
            per_key = len(raw) // max(frame_count * samples_per_key, 1)
            components = self._morph_target_count(node_index, per_key)
            values = raw.reshape(-1, components) * settings.BLEND_SHAPE_WEIGHT_SCALE
            names = [f"blend_shape.{settings.MORPH_TARGET_PREFIX}{i}" for i in range(components)]
            component_type = RENDERER_COMPONENT
        else:
            components = 4 if path == AnimationTarget.ROTATION else 3
            values = sampler.output.content.as_floats().reshape(-1, components)
            if path == AnimationTarget.TRANSLATION:
                values = convert_vector3_space(values)
            elif path == AnimationTarget.ROTATION:
                values = _convert_rotations(values)
            names = PROPERTY_NAMES[path]
            component_type = TRANSFORM_COMPONENT

        values = np.array(values, dtype='f4')
        if cubic:
            # Output holds (in tangent, value, out tangent) per key
            triples = values.reshape(frame_count, 3, components)
            in_tangents = triples[:, 0].copy()
            key_values = triples[:, 1].copy()
            out_tangents = triples[:, 2].copy()
            if path == AnimationTarget.ROTATION:
                ensure_quaternion_continuity(key_values, in_tangents, out_tangents)
        else:
            key_values = values[:frame_count]
            if path == AnimationTarget.ROTATION:
                ensure_quaternion_continuity(key_values)
            if sampler.interpolation == InterpolationType.STEP:
                in_tangents = np.full_like(key_values, math.inf)
                out_tangents = np.full_like(key_values, math.inf)
            else:
                in_tangents, out_tangents = linear_tangents(times, key_values)

        for component, property_name in enumerate(names):
            keyframes = [
                Keyframe(float(times[i]), float(key_values[i, component]),
                         float(in_tangents[i, component]), float(out_tangents[i, component]))
                for i in range(frame_count)
            ]
            clip.set_curve(AnimationCurve(relative_path, component_type, property_name, keyframes))
