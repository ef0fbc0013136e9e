from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from blockforge.pipeline.errors import CompileReport
from blockforge.pipeline.geometry import (
    compile_model,
    face_corner_uvs,
    rotate_face_uvs,
    rotate_vertices,
    to_model_space,
)
from blockforge.pipeline.resolver import ModelResolver
from blockforge.pipeline.types import (
    NORMAL,
    POSITION,
    UV,
    VERTEX_STRIDE,
    AtlasResult,
    Direction,
)

FACES = [direction.value for direction in Direction]


def _atlas(rects):
    return AtlasResult(Image.new("RGBA", (32, 32)), dict(rects), side=32)


def _resolver(models, report=None):
    def load(name):
        if name not in models:
            raise FileNotFoundError(name)
        return models[name]

    return ModelResolver(load, report)


def _cube(texture="#all", **extra):
    element = {
        "from": [0, 0, 0],
        "to": [16, 16, 16],
        "faces": {face: {"texture": texture} for face in FACES},
    }
    element.update(extra)
    return element


def test_to_model_space_centres_block():
    assert to_model_space((0, 0, 0)).tolist() == [-0.5, 0.0, -0.5]
    assert to_model_space((16, 16, 16)).tolist() == [0.5, 1.0, 0.5]


def test_face_corner_uvs_cover_atlas_rect():
    corners = face_corner_uvs((0, 0, 16, 16), (0.5, 0.0, 1.0, 0.5))
    assert corners.tolist() == [[0.5, 0.0], [0.5, 0.5], [1.0, 0.5], [1.0, 0.0]]


def test_face_rotation_is_cyclic():
    corners = np.arange(8, dtype=np.float64).reshape(4, 2)
    assert np.array_equal(rotate_face_uvs(corners, 90), np.roll(corners, 1, axis=0))
    rotated = corners
    for _ in range(4):
        rotated = rotate_face_uvs(rotated, 90)
    assert np.array_equal(rotated, corners)
    assert np.array_equal(rotate_face_uvs(corners, 0), corners)
    with pytest.raises(ValueError):
        rotate_face_uvs(corners, 45)


def test_rotate_vertices_zero_angle_is_identity():
    vertices = np.random.default_rng(3).random((6, VERTEX_STRIDE))
    original = vertices.copy()
    rotate_vertices(vertices, "x", 0, pivot=(1.0, 2.0, 3.0), rescale=True)
    assert np.array_equal(vertices, original)


def test_rotate_vertices_about_y():
    vertices = np.zeros((1, VERTEX_STRIDE))
    vertices[0, POSITION] = (1.0, 0.0, 0.0)
    vertices[0, NORMAL] = (1.0, 0.0, 0.0)
    rotate_vertices(vertices, "y", 90)
    assert vertices[0, POSITION] == pytest.approx([0.0, 0.0, 1.0], abs=1e-6)
    assert vertices[0, NORMAL] == pytest.approx([0.0, 0.0, 1.0], abs=1e-6)


def test_rescale_stretches_back_to_block_bounds():
    vertices = np.zeros((1, VERTEX_STRIDE))
    vertices[0, POSITION] = (0.5, 0.25, 0.0)
    rotate_vertices(vertices, "y", 45, rescale=True)
    assert vertices[0, POSITION] == pytest.approx([0.5, 0.25, 0.5])


def test_full_cube_compiles_to_36_vertices():
    resolver = _resolver({"cube": {"textures": {"all": "block/stone"}, "elements": [_cube()]}})
    model = resolver.resolve_model("cube")
    baked = compile_model(model, resolver, _atlas({"block/stone": (0.0, 0.0, 1.0, 1.0)}))

    assert baked.vertices.shape == (36, VERTEX_STRIDE)
    assert baked.vertices.dtype == np.float32
    assert baked.face_count == 6
    assert not baked.uses_tint

    positions = baked.vertices[:, POSITION]
    assert positions[:, 0].min() == pytest.approx(-0.5)
    assert positions[:, 0].max() == pytest.approx(0.5)
    assert positions[:, 1].min() == pytest.approx(0.0)
    assert positions[:, 1].max() == pytest.approx(1.0)


@pytest.mark.parametrize("index, direction", list(enumerate(Direction)))
def test_faces_follow_direction_order_and_lie_flat(index, direction):
    resolver = _resolver({"cube": {"textures": {"all": "block/stone"}, "elements": [_cube()]}})
    baked = compile_model(resolver.resolve_model("cube"), resolver, _atlas({"block/stone": (0.0, 0.0, 1.0, 1.0)}))
    face = baked.vertices[index * 6 : (index + 1) * 6]

    assert np.allclose(face[:, NORMAL], direction.normal)
    axis = int(np.flatnonzero(direction.normal)[0])
    assert np.ptp(face[:, axis]) == pytest.approx(0.0)


def test_uvs_are_remapped_into_atlas_rect():
    resolver = _resolver({"cube": {"textures": {"all": "block/stone"}, "elements": [_cube()]}})
    baked = compile_model(resolver.resolve_model("cube"), resolver, _atlas({"block/stone": (0.5, 0.0, 1.0, 0.5)}))
    uvs = baked.vertices[:, UV]
    assert uvs[:, 0].min() == pytest.approx(0.5)
    assert uvs[:, 0].max() == pytest.approx(1.0)
    assert uvs[:, 1].min() == pytest.approx(0.0)
    assert uvs[:, 1].max() == pytest.approx(0.5)


def test_partial_face_uv():
    element = _cube()
    element["faces"] = {"up": {"texture": "#all", "uv": [0, 0, 8, 8]}}
    resolver = _resolver({"slab": {"textures": {"all": "block/stone"}, "elements": [element]}})
    baked = compile_model(resolver.resolve_model("slab"), resolver, _atlas({"block/stone": (0.0, 0.0, 0.5, 0.5)}))
    assert baked.vertices.shape == (6, VERTEX_STRIDE)
    assert baked.vertices[:, UV].max() == pytest.approx(0.25)


def test_element_rotation_moves_geometry():
    plain = _resolver({"m": {"textures": {"all": "block/stone"}, "elements": [_cube()]}})
    turned = _resolver(
        {
            "m": {
                "textures": {"all": "block/stone"},
                "elements": [_cube(rotation={"origin": [8, 8, 8], "axis": "y", "angle": 45})],
            }
        }
    )
    atlas = _atlas({"block/stone": (0.0, 0.0, 1.0, 1.0)})
    a = compile_model(plain.resolve_model("m"), plain, atlas)
    b = compile_model(turned.resolve_model("m"), turned, atlas)
    assert not np.allclose(a.vertices[:, POSITION], b.vertices[:, POSITION])
    # Rotation about the vertical axis keeps heights.
    assert np.allclose(a.vertices[:, 1], b.vertices[:, 1])


def test_unresolvable_element_is_skipped():
    report = CompileReport()
    resolver = _resolver(
        {"m": {"textures": {"all": "block/stone"}, "elements": [_cube("#missing"), _cube()]}},
        report,
    )
    baked = compile_model(resolver.resolve_model("m"), resolver, _atlas({"block/stone": (0.0, 0.0, 1.0, 1.0)}), report)
    assert baked.vertices.shape == (36, VERTEX_STRIDE)
    assert [issue.subject for issue in report.of_kind("resolution")] == ["m#element0"]


def test_texture_absent_from_atlas_is_skipped():
    report = CompileReport()
    resolver = _resolver({"m": {"textures": {"all": "block/unpacked"}, "elements": [_cube()]}}, report)
    baked = compile_model(resolver.resolve_model("m"), resolver, _atlas({}), report)
    assert baked.vertices.shape == (0, VERTEX_STRIDE)
    assert len(report.of_kind("resolution")) == 1


def test_tint_index_is_tracked():
    element = _cube()
    element["faces"]["up"]["tintindex"] = 0
    resolver = _resolver({"grass": {"textures": {"all": "block/grass"}, "elements": [element]}})
    baked = compile_model(resolver.resolve_model("grass"), resolver, _atlas({"block/grass": (0.0, 0.0, 1.0, 1.0)}))
    assert baked.uses_tint
    assert baked.tint_indices.tolist() == [-1, 0, -1, -1, -1, -1]


def test_z_rotation_rescales_about_element_origin():
    element = {
        "from": [0, 4, 0],
        "to": [16, 16, 16],
        "rotation": {"origin": [8, 4, 8], "axis": "z", "angle": 45, "rescale": True},
        "faces": {"east": {"texture": "#all"}},
    }
    resolver = _resolver({"wedge": {"textures": {"all": "block/stone"}, "elements": [element]}})
    baked = compile_model(resolver.resolve_model("wedge"), resolver, _atlas({"block/stone": (0.0, 0.0, 1.0, 1.0)}))
    positions = baked.vertices[:, POSITION]

    # Pivot is (0, 0.25, 0) in model space; rescale undoes the 1/cos shrink.
    assert positions[0] == pytest.approx([-0.25, 1.5, 0.5], abs=1e-6)
    assert positions[1] == pytest.approx([0.5, 0.75, 0.5], abs=1e-6)
    assert positions[2] == pytest.approx([-0.25, 1.5, -0.5], abs=1e-6)
    assert positions[5] == pytest.approx([0.5, 0.75, -0.5], abs=1e-6)
    half = 0.5 ** 0.5
    assert baked.vertices[0, NORMAL] == pytest.approx([half, half, 0.0], abs=1e-6)


def test_rotation_rounds_like_single_precision():
    vertices = np.zeros((1, VERTEX_STRIDE), dtype=np.float32)
    vertices[0, POSITION] = (0.5, 0.0, -0.5)
    rotate_vertices(vertices, "y", 90)
    assert float(vertices[0, 0]) == 0.4999999701976776
    assert float(vertices[0, 2]) == 0.5
