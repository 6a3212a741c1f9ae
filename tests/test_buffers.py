"""Tests for buffer and accessor resolution"""

import io

import numpy as np
import pygltflib
import pytest

from src.gltfimporter.core.asset_cache import AssetCache
from src.gltfimporter.core.progress import ProgressReporter
from src.gltfimporter.errors import DocumentIntegrityError, TruncatedAssetError
from src.gltfimporter.loaders.attribute_transforms import convert_vector3_space
from src.gltfimporter.loaders.buffers import BufferResolver, decode_data_uri

from gltf_builders import (DocumentBuilder, FLOAT, SHORT, UNSIGNED_BYTE, UNSIGNED_SHORT,
                           data_uri)


def make_resolver(document, progress=None, data_loader=None):
    cache = AssetCache(document)
    return BufferResolver(document, cache, data_loader=data_loader, progress=progress), cache


def test_decode_data_uri():
    """Test base64 data URIs decode and other URIs are ignored"""
    assert decode_data_uri(data_uri(b"\x01\x02")) == b"\x01\x02"
    assert decode_data_uri("mesh.bin") is None
    assert decode_data_uri(None) is None


def test_float_accessor():
    """Test VEC3 float data decodes to (N, 3)"""
    builder = DocumentBuilder()
    accessor = builder.add_accessor([[1, 2, 3], [4, 5, 6]], FLOAT, "VEC3")
    resolver, _ = make_resolver(builder.build())

    content = resolver.resolve_accessor(accessor).content
    assert content.as_vec3s().shape == (2, 3)
    assert np.allclose(content.as_vec3s(), [[1, 2, 3], [4, 5, 6]])
    assert np.allclose(content.as_floats(), [1, 2, 3, 4, 5, 6])


def test_transform_applied_once():
    """Test the post-decode transform runs once and is cached"""
    builder = DocumentBuilder()
    accessor_index = builder.add_accessor([[1, 2, 3]], FLOAT, "VEC3")
    resolver, _ = make_resolver(builder.build())

    calls = []

    def transform(values):
        calls.append(1)
        return convert_vector3_space(values)

    accessor = resolver.resolve_accessor(accessor_index, transform)
    first = accessor.content.as_vec3s()
    second = accessor.content.as_vec3s()

    assert len(calls) == 1
    assert np.allclose(first, [[-1, 2, 3]])
    assert np.allclose(second, first)


def test_normalized_components():
    """Test normalized integers map to [0, 1] and [-1, 1]"""
    builder = DocumentBuilder()
    unsigned = builder.add_accessor([0, 255, 51, 255], UNSIGNED_BYTE, "VEC4", normalized=True)
    signed = builder.add_accessor([-32768, 32767, 0], SHORT, "VEC3", normalized=True)
    resolver, _ = make_resolver(builder.build())

    assert np.allclose(resolver.resolve_accessor(unsigned).content.as_floats(), [0.0, 1.0, 0.2, 1.0])
    assert np.allclose(resolver.resolve_accessor(signed).content.as_floats(), [-1.0, 1.0, 0.0])


def test_integer_accessor_keeps_type():
    """Test non-normalized indices stay integral"""
    builder = DocumentBuilder()
    accessor = builder.add_accessor([0, 1, 2, 65535], UNSIGNED_SHORT, "SCALAR")
    resolver, _ = make_resolver(builder.build())

    indices = resolver.resolve_accessor(accessor).content.as_uints()
    assert indices.dtype == np.uint32
    assert list(indices) == [0, 1, 2, 65535]


def test_interleaved_view():
    """Test byteStride picks elements out of interleaved data"""
    builder = DocumentBuilder()
    # position (3 floats) + uv (2 floats) per vertex
    interleaved = np.array([
        [1, 2, 3, 0.5, 0.5],
        [4, 5, 6, 0.25, 0.75],
    ], dtype='f4')
    view = builder.add_view(interleaved.tobytes(), byte_stride=20)
    builder.gltf.accessors.append(pygltflib.Accessor(
        bufferView=view, byteOffset=0, componentType=FLOAT, count=2, type="VEC3"))
    builder.gltf.accessors.append(pygltflib.Accessor(
        bufferView=view, byteOffset=12, componentType=FLOAT, count=2, type="VEC2"))
    resolver, _ = make_resolver(builder.build())

    assert np.allclose(resolver.resolve_accessor(0).content.as_vec3s(), [[1, 2, 3], [4, 5, 6]])
    assert np.allclose(resolver.resolve_accessor(1).content.as_vec2s(), [[0.5, 0.5], [0.25, 0.75]])


def test_sparse_accessor_without_view():
    """Test sparse values patch a zero-initialized accessor"""
    builder = DocumentBuilder()
    indices_view = builder.add_view(np.array([1, 3], dtype=np.uint16).tobytes())
    values_view = builder.add_view(np.array([[1, 1, 1], [2, 2, 2]], dtype='f4').tobytes())
    builder.gltf.accessors.append(pygltflib.Accessor(
        bufferView=None, componentType=FLOAT, count=4, type="VEC3",
        sparse=pygltflib.Sparse(
            count=2,
            indices=pygltflib.AccessorSparseIndices(bufferView=indices_view, byteOffset=0,
                                                    componentType=UNSIGNED_SHORT),
            values=pygltflib.AccessorSparseValues(bufferView=values_view, byteOffset=0))))
    resolver, _ = make_resolver(builder.build())

    values = resolver.resolve_accessor(0).content.as_vec3s()
    assert np.allclose(values, [[0, 0, 0], [1, 1, 1], [0, 0, 0], [2, 2, 2]])


def test_buffer_resolved_once():
    """Test a buffer is opened once and counted once"""
    builder = DocumentBuilder()
    first = builder.add_accessor([[1, 2, 3]], FLOAT, "VEC3")
    second = builder.add_accessor([[4, 5, 6]], FLOAT, "VEC3")
    progress = ProgressReporter()
    resolver, cache = make_resolver(builder.build(), progress)

    resolver.resolve_accessor(first).content
    resolver.resolve_accessor(second).content

    assert progress.status.buffers_loaded == 1
    assert resolver.resolve_buffer(0) is cache.buffers[0]


def test_external_buffer_uses_data_loader():
    """Test URI buffers are opened through the data loader"""
    payload = np.array([[7, 8, 9]], dtype='f4').tobytes()

    class MemoryLoader:
        def __init__(self):
            self.requested = []

        def load_stream(self, uri):
            self.requested.append(uri)
            return io.BytesIO(payload)

    document = pygltflib.GLTF2(
        buffers=[pygltflib.Buffer(uri="mesh.bin", byteLength=len(payload))],
        bufferViews=[pygltflib.BufferView(buffer=0, byteOffset=0, byteLength=len(payload))],
        accessors=[pygltflib.Accessor(bufferView=0, componentType=FLOAT, count=1, type="VEC3")])
    loader = MemoryLoader()
    resolver, _ = make_resolver(document, data_loader=loader)

    assert np.allclose(resolver.resolve_accessor(0).content.as_vec3s(), [[7, 8, 9]])
    assert loader.requested == ["mesh.bin"]


def test_out_of_range_indices():
    """Test bad accessor and buffer indices are integrity errors"""
    builder = DocumentBuilder()
    builder.add_accessor([[1, 2, 3]], FLOAT, "VEC3")
    resolver, _ = make_resolver(builder.build())

    with pytest.raises(DocumentIntegrityError):
        resolver.resolve_accessor(5)
    with pytest.raises(DocumentIntegrityError):
        resolver.resolve_buffer(3)


def test_truncated_buffer():
    """Test reading past the end of a buffer stream"""
    builder = DocumentBuilder()
    accessor = builder.add_accessor([[1, 2, 3]], FLOAT, "VEC3")
    document = builder.build()
    # Claim more elements than the buffer holds
    document.accessors[accessor].count = 10
    document.bufferViews[0].byteLength = 120
    resolver, _ = make_resolver(document)

    with pytest.raises(TruncatedAssetError):
        resolver.resolve_accessor(accessor).content


def test_read_past_view_end():
    """Test an accessor larger than its buffer view is truncated data"""
    builder = DocumentBuilder()
    # Six VEC3 floats in a view that only holds three
    view = builder.add_view(np.zeros((3, 3), dtype='f4').tobytes())
    builder.add_view(np.ones((3, 3), dtype='f4').tobytes())
    builder.gltf.accessors.append(pygltflib.Accessor(
        bufferView=view, byteOffset=0, componentType=FLOAT, count=6, type="VEC3"))
    resolver, _ = make_resolver(builder.build())

    assert resolver.document.bufferViews[view].byteLength == 36
    with pytest.raises(TruncatedAssetError):
        resolver.resolve_accessor(0).content
    with pytest.raises(TruncatedAssetError):
        resolver.read_bytes(view, 24, 16)
    assert len(resolver.read_bytes(view, 24, 12)) == 12


def test_accessor_decoded_lazily():
    """Test accessor data is only read on first access"""
    builder = DocumentBuilder()
    accessor_index = builder.add_accessor([[1, 2, 3]], FLOAT, "VEC3")
    resolver, _ = make_resolver(builder.build())

    accessor = resolver.resolve_accessor(accessor_index)
    assert accessor.is_decoded is False
    assert accessor.count == 1
    accessor.content
    assert accessor.is_decoded is True
