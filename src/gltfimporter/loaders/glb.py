"""
GLB Container

Locates the JSON and binary chunks inside a binary glTF stream.
JSON tokenizing itself is left to pygltflib.

Layout: https://registry.khronos.org/glTF/specs/2.0/glTF-2.0.html#binary-gltf-layout
"""

import struct
from typing import BinaryIO, Tuple

import pygltflib

from ..errors import DocumentIntegrityError, TruncatedAssetError

GLB_MAGIC = 0x46546C67        # 'glTF'
GLB_VERSION = 2
CHUNK_TYPE_JSON = 0x4E4F534A  # 'JSON'
CHUNK_TYPE_BIN = 0x004E4942   # 'BIN\0'
HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8


def read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise TruncatedAssetError(f"Expected {size} bytes, stream ended after {len(data)}")
    return data


def is_glb(stream: BinaryIO) -> bool:
    """Peek at the magic number without moving the stream."""
    position = stream.tell()
    head = stream.read(4)
    stream.seek(position)
    return len(head) == 4 and struct.unpack("<I", head)[0] == GLB_MAGIC


def read_header(stream: BinaryIO, start_position: int = 0) -> int:
    """
    Validate the 12-byte GLB header.

    Returns:
        Total length of the GLB payload in bytes
    """
    stream.seek(start_position)
    magic, version, length = struct.unpack("<III", read_exact(stream, HEADER_SIZE))
    if magic != GLB_MAGIC:
        raise DocumentIntegrityError("Incorrect magic number in GLB header")
    if version != GLB_VERSION:
        raise DocumentIntegrityError(f"Only glTF 2 binaries are supported, not version {version}")
    return length


def _read_chunk_header(stream: BinaryIO) -> Tuple[int, int]:
    return struct.unpack("<II", read_exact(stream, CHUNK_HEADER_SIZE))


def parse_document(stream: BinaryIO, start_position: int = 0) -> pygltflib.GLTF2:
    """
    Parse the JSON chunk of a GLB stream into a document.

    Args:
        stream: Seekable stream positioned anywhere
        start_position: Offset of the GLB header in the stream

    Returns:
        The parsed glTF document
    """
    read_header(stream, start_position)
    chunk_length, chunk_type = _read_chunk_header(stream)
    if chunk_type != CHUNK_TYPE_JSON:
        raise DocumentIntegrityError("First GLB chunk must be JSON")
    text = read_exact(stream, chunk_length).decode("utf-8")
    return parse_json(text)


def parse_json(text: str) -> pygltflib.GLTF2:
    return pygltflib.GLTF2.from_json(text, infer_missing=True)


def seek_to_binary_chunk(stream: BinaryIO, binary_chunk_index: int, start_position: int = 0) -> int:
    """
    Move the stream to the start of a binary chunk's data.

    Binary chunks follow the JSON chunk in buffer declaration order.

    Args:
        stream: GLB stream
        binary_chunk_index: Which BIN chunk (0 for the first)
        start_position: Offset of the GLB header in the stream

    Returns:
        Absolute stream position of the chunk data
    """
    total_length = read_header(stream, start_position)
    end = start_position + total_length

    # Skip the JSON chunk
    chunk_length, _ = _read_chunk_header(stream)
    stream.seek(chunk_length, 1)

    binary_seen = 0
    while stream.tell() < end:
        chunk_length, chunk_type = _read_chunk_header(stream)
        if chunk_type == CHUNK_TYPE_BIN:
            if binary_seen == binary_chunk_index:
                return stream.tell()
            binary_seen += 1
        stream.seek(chunk_length, 1)

    raise DocumentIntegrityError(f"GLB has no binary chunk {binary_chunk_index}")
