from __future__ import annotations

import numpy as np

from .geometry import CORNER_OF_VERTEX, VERTEX_OF_CORNER, rotate_vertices
from .types import (
    UV,
    VERTEX_STRIDE,
    VERTICES_PER_FACE,
    ModelPlacement,
    RenderableBlockModel,
    RenderableModel,
)

X_PIVOT = (0.0, 0.5, 0.0)
Y_PIVOT = (0.0, 0.0, 0.0)

# Coordinates tested to decide whether a face keeps its texture upright.
_LOCK_AXES = {"x": (2, 0), "y": (1,)}
_FLAT_EPSILON = 1e-5


def _quarter_turns(degrees: int, field_name: str) -> int:
    if degrees % 90:
        raise ValueError(f"{field_name} rotation must be a multiple of 90, got {degrees}")
    return (degrees // 90) % 4


def _locked_faces(faces: np.ndarray, axis: str) -> np.ndarray:
    corners = faces[:, VERTEX_OF_CORNER, :3]
    locked = np.zeros(len(faces), dtype=bool)
    for column in _LOCK_AXES[axis]:
        spread = np.ptp(corners[:, :, column], axis=1)
        locked |= spread < _FLAT_EPSILON
    return locked


def _lock_uvs(faces: np.ndarray, axis: str, turns: int) -> None:
    locked = _locked_faces(faces, axis)
    if not locked.any():
        return
    selected = faces[locked]
    rolled = np.roll(selected[:, VERTEX_OF_CORNER, UV], turns, axis=1)
    selected[:, :, UV] = rolled[:, CORNER_OF_VERTEX]
    faces[locked] = selected


def orient(
    vertices: np.ndarray,
    x_rotation: int = 0,
    y_rotation: int = 0,
    uv_lock: bool = False,
) -> np.ndarray:
    """Return a rotated copy of a baked vertex buffer.

    The X rotation is applied first about the block centre, then the Y
    rotation about the origin. With ``uv_lock`` the faces lying flat across
    the rotation axis get their corner UVs rolled so textures stay aligned
    with the world.
    """

    x_turns = _quarter_turns(x_rotation, "x")
    y_turns = _quarter_turns(y_rotation, "y")

    source = np.asarray(vertices)
    faces = source.reshape(-1, VERTICES_PER_FACE, VERTEX_STRIDE).astype(np.float32)
    for axis, turns, degrees, pivot in (
        ("x", x_turns, x_rotation, X_PIVOT),
        ("y", y_turns, y_rotation, Y_PIVOT),
    ):
        if turns == 0:
            continue
        if uv_lock:
            _lock_uvs(faces, axis, turns)
        flat = faces.reshape(-1, VERTEX_STRIDE)
        rotate_vertices(flat, axis, degrees % 360, pivot=pivot)

    return faces.reshape(source.shape).astype(source.dtype)


def orient_model(base: RenderableBlockModel, placement: ModelPlacement) -> RenderableModel:
    vertices = orient(base.vertices, placement.x, placement.y, placement.uvlock)
    return RenderableModel(placement=placement, vertices=vertices, uses_tint=base.uses_tint)
