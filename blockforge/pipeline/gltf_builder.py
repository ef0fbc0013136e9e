from __future__ import annotations

import io
import json
import struct
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .types import (
    COLOR,
    NORMAL,
    POSITION,
    UV,
    VERTEX_STRIDE,
    AtlasResult,
    GLBResult,
    RenderableModel,
)

GLTF_HEADER_MAGIC = 0x46546C67
GLTF_VERSION = 2
GENERATOR = "BlockForge"

JSON_CHUNK = 0x4E4F534A
BIN_CHUNK = 0x004E4942
ARRAY_BUFFER = 34962
FLOAT = 5126


def _append_with_padding(target: bytearray, data: bytes) -> Tuple[int, int]:
    offset = len(target)
    length = len(data)
    target.extend(data)
    padding = (4 - (length % 4)) % 4
    if padding:
        target.extend(b"\x00" * padding)
    return offset, length


def _pad_json(document: Dict[str, object]) -> bytes:
    json_bytes = json.dumps(document).encode("utf-8")
    json_padding = (4 - (len(json_bytes) % 4)) % 4
    return json_bytes + b" " * json_padding


def _empty_glb() -> GLBResult:
    empty = {
        "asset": {"version": "2.0", "generator": GENERATOR},
        "scenes": [{"nodes": [0]}],
        "scene": 0,
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": []}],
        "buffers": [{"byteLength": 0}],
        "bufferViews": [],
        "accessors": [],
        "materials": [],
    }
    json_bytes = _pad_json(empty)
    header = struct.pack("<III", GLTF_HEADER_MAGIC, GLTF_VERSION, 12 + 8 + len(json_bytes))
    json_chunk_header = struct.pack("<II", len(json_bytes), JSON_CHUNK)
    return GLBResult(header + json_chunk_header + json_bytes, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0))


def models_to_glb(models: Sequence[RenderableModel], atlas: AtlasResult) -> GLBResult:
    """Pack oriented placements into one non-indexed, textured glTF binary."""

    buffers = [np.asarray(model.vertices, dtype=np.float32).reshape(-1, VERTEX_STRIDE) for model in models]
    buffers = [buffer for buffer in buffers if len(buffer)]
    if not buffers:
        return _empty_glb()
    vertices = np.concatenate(buffers, axis=0)

    positions = np.ascontiguousarray(vertices[:, POSITION])
    normals = np.ascontiguousarray(vertices[:, NORMAL])
    uvs = np.ascontiguousarray(vertices[:, UV])
    colors = np.ascontiguousarray(vertices[:, COLOR])

    image_bytes = io.BytesIO()
    atlas.image.save(image_bytes, format="PNG")
    atlas_bytes = image_bytes.getvalue()

    bin_chunk = bytearray()
    buffer_views: List[Dict[str, object]] = []
    accessors: List[Dict[str, object]] = []

    def add_attribute(array: np.ndarray, kind: str, bounds: bool = False) -> int:
        offset, length = _append_with_padding(bin_chunk, array.tobytes())
        buffer_views.append({
            "buffer": 0,
            "byteOffset": offset,
            "byteLength": length,
            "target": ARRAY_BUFFER,
        })
        accessor: Dict[str, object] = {
            "bufferView": len(buffer_views) - 1,
            "componentType": FLOAT,
            "count": len(array),
            "type": kind,
        }
        if bounds:
            accessor["min"] = array.min(axis=0).tolist()
            accessor["max"] = array.max(axis=0).tolist()
        accessors.append(accessor)
        return len(accessors) - 1

    attributes = {
        "POSITION": add_attribute(positions, "VEC3", bounds=True),
        "NORMAL": add_attribute(normals, "VEC3"),
        "TEXCOORD_0": add_attribute(uvs, "VEC2"),
        "COLOR_0": add_attribute(colors, "VEC3"),
    }
    image_offset, image_length = _append_with_padding(bin_chunk, atlas_bytes)
    buffer_views.append({
        "buffer": 0,
        "byteOffset": image_offset,
        "byteLength": image_length,
    })

    gltf = {
        "asset": {"version": "2.0", "generator": GENERATOR},
        "scenes": [{"nodes": [0]}],
        "scene": 0,
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": attributes, "material": 0}]}],
        "buffers": [{"byteLength": len(bin_chunk)}],
        "bufferViews": buffer_views,
        "accessors": accessors,
        "materials": [
            {
                "pbrMetallicRoughness": {
                    "baseColorTexture": {"index": 0},
                    "metallicFactor": 0.0,
                    "roughnessFactor": 1.0,
                },
                "alphaMode": "MASK",
                "doubleSided": False,
            }
        ],
        # Nearest filtering keeps block textures crisp.
        "samplers": [
            {
                "magFilter": 9728,
                "minFilter": 9728,
                "wrapS": 33071,
                "wrapT": 33071,
            }
        ],
        "images": [
            {
                "bufferView": len(buffer_views) - 1,
                "mimeType": "image/png",
            }
        ],
        "textures": [{"sampler": 0, "source": 0}],
    }

    json_bytes = _pad_json(gltf)
    total_length = 12 + 8 + len(json_bytes) + 8 + len(bin_chunk)
    header = struct.pack("<III", GLTF_HEADER_MAGIC, GLTF_VERSION, total_length)
    json_chunk_header = struct.pack("<II", len(json_bytes), JSON_CHUNK)
    bin_chunk_header = struct.pack("<II", len(bin_chunk), BIN_CHUNK)
    glb_bytes = header + json_chunk_header + json_bytes + bin_chunk_header + bytes(bin_chunk)

    pos_min = positions.min(axis=0)
    pos_max = positions.max(axis=0)
    center = tuple(((pos_min + pos_max) / 2.0).tolist())
    size = tuple((pos_max - pos_min).tolist())
    return GLBResult(glb_bytes, center, size)
