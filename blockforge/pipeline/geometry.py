from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np

from .errors import CompileReport, ResolutionError
from .resolver import ModelResolver
from .types import (
    COLOR,
    NORMAL,
    POSITION,
    UV,
    VERTEX_STRIDE,
    AtlasResult,
    BlockModel,
    Direction,
    Element,
    Face,
    RenderableBlockModel,
)

# Model-local space: block units, centred horizontally, base at y=0.
_LOCAL_OFFSET = np.array([0.5, 0.0, 0.5], dtype=np.float64)
_WHITE = (1.0, 1.0, 1.0)

# Which of the four quad corners each of the six emitted vertices uses.
CORNER_OF_VERTEX = np.array([0, 1, 3, 3, 1, 2])
# Vertex rows holding corners 0..3 (first occurrence).
VERTEX_OF_CORNER = np.array([0, 1, 5, 2])

# Pair of in-plane columns for a rotation about each axis.
_PLANES = {"x": (1, 2), "y": (0, 2), "z": (0, 1)}


def to_model_space(point: Sequence[float]) -> np.ndarray:
    return np.asarray(point, dtype=np.float64) / 16.0 - _LOCAL_OFFSET


def rotate_face_uvs(corners: np.ndarray, rotation: int) -> np.ndarray:
    """Cyclically shift the 4 corner UVs by ``rotation`` quarter turns."""

    if rotation % 90:
        raise ValueError(f"Face rotation must be a multiple of 90, got {rotation}")
    return np.roll(corners, (rotation // 90) % 4, axis=0)


def face_corner_uvs(face_uv: Sequence[float], atlas_rect: Sequence[float]) -> np.ndarray:
    # Single precision throughout, like the vertex buffer it feeds.
    au0, av0, au1, av1 = np.asarray(atlas_rect, dtype=np.float32)
    width = abs(au1 - au0)
    height = abs(av1 - av0)
    u0, v0, u1, v1 = np.asarray(face_uv, dtype=np.float32) / np.float32(16.0)
    u0, u1 = au0 + width * u0, au0 + width * u1
    v0, v1 = av0 + height * v0, av0 + height * v1
    return np.array([[u0, v0], [u0, v1], [u1, v1], [u1, v0]], dtype=np.float32)


def build_face(
    direction: Direction,
    element: Element,
    corner_uvs: np.ndarray,
) -> np.ndarray:
    start, end = direction.corners(element.from_, element.to)
    s = to_model_space(start)
    e = to_model_space(end)
    if direction.z_face:
        v1 = (s[0], e[1], s[2])
        v2 = (e[0], s[1], e[2])
    else:
        v1 = (s[0], e[1], e[2])
        v2 = (e[0], s[1], s[2])
    positions = np.array([s, v1, v2, v2, v1, e], dtype=np.float64)

    vertices = np.empty((6, VERTEX_STRIDE), dtype=np.float32)
    vertices[:, POSITION] = positions
    vertices[:, UV] = corner_uvs[CORNER_OF_VERTEX]
    vertices[:, NORMAL] = direction.normal
    vertices[:, COLOR] = _WHITE
    return vertices


def rotate_vertices(
    vertices: np.ndarray,
    axis: str,
    degrees: float,
    pivot: Sequence[float] = (0.0, 0.0, 0.0),
    rescale: bool = False,
) -> None:
    """Rotate positions and normals in place about ``pivot`` on ``axis``.

    The angle is taken in single precision and every intermediate value is
    stored back at single precision, so rotated buffers carry the same
    rounding as the data files the web viewer already reads.
    """

    if degrees == 0:
        return
    a, b = _PLANES[axis]
    angle = float(np.float32(math.radians(degrees)))
    cos, sin = math.cos(angle), math.sin(angle)

    pa = _single(vertices[:, a].astype(np.float64) - pivot[a])
    pb = _single(vertices[:, b].astype(np.float64) - pivot[b])
    ra = _single(pa * cos - pb * sin)
    rb = _single(pa * sin + pb * cos)
    if rescale:
        scale = float(np.float32(1.0) / np.float32(cos))
        ra = _single(ra * scale)
        rb = _single(rb * scale)
    vertices[:, a] = _single(ra + pivot[a])
    vertices[:, b] = _single(rb + pivot[b])

    na = vertices[:, 5 + a].astype(np.float64)
    nb = vertices[:, 5 + b].astype(np.float64)
    vertices[:, 5 + a] = _single(na * cos - nb * sin)
    vertices[:, 5 + b] = _single(na * sin + nb * cos)


def _single(values: np.ndarray) -> np.ndarray:
    """Round to float32 and widen again for the next double-precision step."""
    return np.asarray(values, dtype=np.float64).astype(np.float32).astype(np.float64)


def compile_element(
    model: BlockModel,
    element: Element,
    resolver: ModelResolver,
    atlas: AtlasResult,
) -> tuple[np.ndarray, List[int]]:
    faces: List[np.ndarray] = []
    tints: List[int] = []
    for direction in Direction:
        face: Optional[Face] = element.faces.get(direction)
        if face is None:
            continue
        texture_key = resolver.resolve_texture_id(model, face.texture)
        rect = atlas.lookup(texture_key)
        if rect is None:
            raise ResolutionError(f"texture {texture_key} is not in the atlas")
        corners = rotate_face_uvs(face_corner_uvs(face.uv, rect), face.rotation)
        faces.append(build_face(direction, element, corners))
        tints.append(face.tint_index)

    if not faces:
        return np.zeros((0, VERTEX_STRIDE), dtype=np.float32), tints
    vertices = np.concatenate(faces, axis=0)
    if element.angle != 0:
        rotate_vertices(
            vertices,
            element.axis,
            element.angle,
            pivot=to_model_space(element.origin),
            rescale=element.rescale,
        )
    return vertices, tints


def compile_model(
    model: BlockModel,
    resolver: ModelResolver,
    atlas: AtlasResult,
    report: Optional[CompileReport] = None,
) -> RenderableBlockModel:
    """Bake a resolved model into an interleaved stride-11 triangle buffer.

    Elements whose textures cannot be resolved are skipped and reported;
    the rest of the model still compiles.
    """

    chunks: List[np.ndarray] = []
    tints: List[int] = []
    for index, element in enumerate(resolver.effective_elements(model)):
        try:
            vertices, element_tints = compile_element(model, element, resolver, atlas)
        except ResolutionError as exc:
            if report is not None:
                report.add("resolution", f"{model.name}#element{index}", str(exc))
            continue
        chunks.append(vertices)
        tints.extend(element_tints)

    if chunks:
        buffer = np.concatenate(chunks, axis=0).astype(np.float32)
    else:
        buffer = np.zeros((0, VERTEX_STRIDE), dtype=np.float32)
    return RenderableBlockModel(
        vertices=buffer,
        tint_indices=np.array(tints, dtype=np.int32),
        ambient_occlusion=model.ambient_occlusion,
    )

