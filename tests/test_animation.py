"""Tests for animation curves and clip building"""

import math

import numpy as np
import pygltflib
import pytest

from src.gltfimporter.animation.animation import (AnimationClip, AnimationCurve, Keyframe, WrapMode,
                                                  ensure_quaternion_continuity)
from src.gltfimporter.animation.clip_builder import linear_tangents
from src.gltfimporter.errors import TruncatedAssetError
from src.gltfimporter.loaders.gltf_importer import GltfImporter

from gltf_builders import DocumentBuilder, FLOAT

OUTPUT_TYPES = {"translation": "VEC3", "scale": "VEC3", "rotation": "VEC4", "weights": "SCALAR"}


def add_animation(builder, channels, name=None):
    """channels: (node, path, times, values, interpolation) tuples, one sampler each."""
    samplers = []
    targets = []
    for i, (node, path, times, values, interpolation) in enumerate(channels):
        time_accessor = builder.add_accessor(times, FLOAT, "SCALAR")
        value_accessor = builder.add_accessor(values, FLOAT, OUTPUT_TYPES.get(path, "VEC3"))
        samplers.append(pygltflib.AnimationSampler(input=time_accessor, output=value_accessor,
                                                   interpolation=interpolation))
        targets.append(pygltflib.AnimationChannel(
            sampler=i, target=pygltflib.AnimationChannelTarget(node=node, path=path)))
    builder.gltf.animations.append(pygltflib.Animation(name=name, samplers=samplers, channels=targets))


def mover_builder():
    builder = DocumentBuilder()
    builder.add_node(name="Mover")
    builder.add_scene([0])
    return builder


def import_clip(builder, index=0):
    importer = GltfImporter(builder.build())
    root = importer.load_scene_sync()
    return root, list(root.animation.clips.values())[index]


def test_step_translation():
    """Test STEP keys hold their value until the next key"""
    builder = mover_builder()
    add_animation(builder, [(0, "translation", [0.0, 1.0], [[0, 0, 0], [1, 0, 0]], "STEP")])
    _, clip = import_clip(builder)

    curve = clip.get_curve("Mover", "transform", "local_position.x")
    assert all(math.isinf(key.in_tangent) and math.isinf(key.out_tangent) for key in curve.keyframes)
    assert curve.evaluate(0.5) == 0.0
    assert curve.evaluate(1.0) == -1.0


def test_linear_translation():
    """Test LINEAR keys get slope tangents and interpolate linearly"""
    builder = mover_builder()
    add_animation(builder, [(0, "translation", [0.0, 2.0], [[0, 0, 0], [2, 4, 0]], "LINEAR")])
    _, clip = import_clip(builder)

    x = clip.get_curve("Mover", "transform", "local_position.x")
    y = clip.get_curve("Mover", "transform", "local_position.y")
    assert x.keyframes[0].out_tangent == pytest.approx(-1.0)
    assert x.keyframes[1].in_tangent == pytest.approx(-1.0)
    assert x.evaluate(1.0) == pytest.approx(-1.0)
    assert y.evaluate(0.5) == pytest.approx(1.0)
    assert clip.duration == 2.0


def test_cubic_spline_deinterleaved():
    """Test CUBICSPLINE output splits into in tangent, value and out tangent"""
    builder = mover_builder()
    values = [
        [0, 0, 0], [0, 0, 0], [1, 0, 0],
        [1, 0, 0], [1, 0, 0], [0, 0, 0],
    ]
    add_animation(builder, [(0, "translation", [0.0, 1.0], values, "CUBICSPLINE")])
    _, clip = import_clip(builder)

    curve = clip.get_curve("Mover", "transform", "local_position.x")
    assert len(curve.keyframes) == 2
    assert [key.value for key in curve.keyframes] == [0.0, -1.0]
    assert curve.keyframes[0].out_tangent == -1.0
    assert curve.keyframes[1].in_tangent == -1.0
    assert curve.evaluate(0.5) == pytest.approx(-0.5)


def test_rotation_continuity():
    """Test rotation keys are flipped into the same hemisphere"""
    builder = mover_builder()
    add_animation(builder, [(0, "rotation", [0.0, 1.0], [[0, 0, 0, 1], [0, 0, 0, -1]], "LINEAR")])
    _, clip = import_clip(builder)

    w = clip.get_curve("Mover", "transform", "local_rotation.w")
    assert [key.value for key in w.keyframes] == [1.0, 1.0]


def test_rotation_converted():
    """Test rotation keys are converted to host space"""
    builder = mover_builder()
    add_animation(builder, [(0, "rotation", [0.0], [[0.0, 0.6, 0.0, 0.8]], "LINEAR")])
    _, clip = import_clip(builder)

    assert clip.get_curve("Mover", "transform", "local_rotation.y").keyframes[0].value == pytest.approx(-0.6)
    assert clip.get_curve("Mover", "transform", "local_rotation.w").keyframes[0].value == pytest.approx(0.8)


def test_morph_weights():
    """Test weight channels become one scaled renderer curve per target"""
    builder = DocumentBuilder()
    delta = builder.add_accessor([[0, 1, 0]] * 3, FLOAT, "VEC3")
    mesh = builder.add_triangle_mesh(targets=[pygltflib.Attributes(POSITION=delta),
                                              pygltflib.Attributes(POSITION=delta)])
    builder.add_node(name="Face", mesh=mesh)
    builder.add_scene([0])
    add_animation(builder, [(0, "weights", [0.0, 1.0], [0.0, 0.5, 1.0, 0.25], "LINEAR")])
    _, clip = import_clip(builder)

    first = clip.get_curve("Face", "renderer", "blend_shape.Morphtarget0")
    second = clip.get_curve("Face", "renderer", "blend_shape.Morphtarget1")
    assert [key.value for key in first.keyframes] == pytest.approx([0.0, 100.0])
    assert [key.value for key in second.keyframes] == pytest.approx([50.0, 25.0])


def test_clip_names_and_wrap():
    """Test unnamed clips get a default name and all clips loop"""
    builder = mover_builder()
    add_animation(builder, [(0, "scale", [0.0], [[1, 1, 1]], "LINEAR")])
    add_animation(builder, [(0, "scale", [0.0], [[2, 2, 2]], "LINEAR")], name="Grow")
    root, _ = import_clip(builder)

    assert list(root.animation.clips) == ["animation:0", "Grow"]
    assert root.animation.default_clip is root.animation.clips["animation:0"]
    assert all(clip.wrap_mode == WrapMode.LOOP for clip in root.animation.clips.values())


def test_nested_relative_path():
    """Test curves are bound by the path of names below the scene root"""
    builder = DocumentBuilder()
    builder.add_node(name="Body", children=[1])
    builder.add_node(name="Head")
    builder.add_scene([0])
    add_animation(builder, [(1, "scale", [0.0], [[1, 2, 3]], "LINEAR")])
    _, clip = import_clip(builder)

    assert clip.get_curve("Body/Head", "transform", "local_scale.y").keyframes[0].value == 2.0


def test_channels_without_node_or_known_path_skipped():
    """Test node-less and unknown-path channels animate nothing"""
    builder = mover_builder()
    add_animation(builder, [
        (None, "translation", [0.0], [[1, 1, 1]], "LINEAR"),
        (0, "pointer", [0.0], [[1, 1, 1]], "LINEAR"),
        (0, "scale", [0.0], [[3, 3, 3]], "LINEAR"),
    ])
    _, clip = import_clip(builder)

    assert len(clip.curves) == 3
    assert {curve.property_name for curve in clip.curves.values()} == {
        "local_scale.x", "local_scale.y", "local_scale.z"}


def test_clip_built_once():
    """Test the clip builder returns the cached clip"""
    builder = mover_builder()
    add_animation(builder, [(0, "scale", [0.0], [[1, 1, 1]], "LINEAR")])
    importer = GltfImporter(builder.build())
    root = importer.load_scene_sync()

    assert importer.clips.build_clip(0, root) is root.animation.clips["animation:0"]


def test_failed_clip_not_cached():
    """Test a clip whose channels fail to build is rebuilt, not returned half done"""
    builder = mover_builder()
    add_animation(builder, [
        (0, "scale", [0.0], [[1, 1, 1]], "LINEAR"),
        (0, "translation", [0.0, 1.0], [[0, 0, 0], [1, 0, 0]], "LINEAR"),
    ])
    # Second channel declares more values than its buffer view holds
    output = builder.gltf.animations[0].samplers[1].output
    builder.gltf.accessors[output].count = 6
    importer = GltfImporter(builder.build())

    with pytest.raises(TruncatedAssetError):
        importer.load_scene_sync()
    assert importer.cache.animations[0].loaded_clip is None

    root = importer.cache.node_by_name["Mover"].parent
    with pytest.raises(TruncatedAssetError):
        importer.clips.build_clip(0, root)
    assert importer.cache.animations[0].loaded_clip is None


def test_curve_evaluation_clamps():
    """Test times outside the key range clamp to the end keys"""
    curve = AnimationCurve("", "transform", "local_position.x",
                           [Keyframe(1.0, 5.0), Keyframe(2.0, 7.0)])

    assert curve.evaluate(0.0) == 5.0
    assert curve.evaluate(3.0) == 7.0
    assert AnimationCurve("", "transform", "x").evaluate(1.0) is None


def test_clip_set_curve_replaces():
    """Test one curve per path, component and property"""
    clip = AnimationClip("Clip")
    clip.set_curve(AnimationCurve("A", "transform", "local_scale.x", [Keyframe(0.0, 1.0)]))
    clip.set_curve(AnimationCurve("A", "transform", "local_scale.x", [Keyframe(0.0, 2.0), Keyframe(4.0, 3.0)]))

    assert len(clip.curves) == 1
    assert clip.duration == 4.0
    assert clip.sample_all(4.0) == {("A", "transform", "local_scale.x"): 3.0}


def test_quaternion_continuity_flips_tangents():
    """Test tangents flip along with their keys"""
    values = np.array([[0, 0, 0, 1], [0, 0, 0, -1], [0, 0, 0, 1]], dtype='f4')
    tangents = np.ones((3, 4), dtype='f4')
    ensure_quaternion_continuity(values, tangents)

    assert np.allclose(values[:, 3], [1, 1, 1])
    assert np.allclose(tangents[:, 0], [1, -1, 1])


def test_linear_tangents():
    """Test slopes between keys and zero at the ends"""
    in_tangents, out_tangents = linear_tangents(np.array([0.0, 1.0, 3.0], dtype='f4'),
                                                np.array([[0.0], [2.0], [6.0]], dtype='f4'))

    assert np.allclose(in_tangents[:, 0], [0.0, 2.0, 2.0])
    assert np.allclose(out_tangents[:, 0], [2.0, 2.0, 0.0])
