from __future__ import annotations

import json
from pathlib import Path

import pytest
from PIL import Image

FACES = ("down", "up", "north", "south", "west", "east")


class AssetTree:
    """Writes a minimal ``assets/minecraft`` layout under a temp directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, relative: str) -> Path:
        path = self.root / "assets" / "minecraft" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def texture(self, name: str, size=(16, 16), color=(128, 128, 128, 255)) -> Path:
        path = self._path(f"textures/block/{name}.png")
        Image.new("RGBA", size, color).save(path)
        return path

    def model(self, name: str, data) -> Path:
        path = self._path(f"models/block/{name}.json")
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def block_state(self, name: str, data) -> Path:
        path = self._path(f"blockstates/{name}.json")
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_text(json.dumps(data), encoding="utf-8")
        return path


def cube_element(texture: str = "#all", tint_index=None):
    faces = {}
    for face in FACES:
        faces[face] = {"texture": texture, "cullface": face}
        if tint_index is not None:
            faces[face]["tintindex"] = tint_index
    return {"from": [0, 0, 0], "to": [16, 16, 16], "faces": faces}


@pytest.fixture
def asset_tree(tmp_path: Path) -> AssetTree:
    return AssetTree(tmp_path / "resources")


@pytest.fixture
def sample_assets(asset_tree: AssetTree) -> AssetTree:
    asset_tree.texture("stone", color=(120, 120, 120, 255))
    asset_tree.texture("dirt", color=(130, 90, 50, 255))
    asset_tree.model("cube_all", {"textures": {"particle": "#all"}, "elements": [cube_element()]})
    asset_tree.model("stone", {"parent": "block/cube_all", "textures": {"all": "block/stone"}})
    asset_tree.model("grass", {"textures": {"all": "minecraft:block/dirt"}, "elements": [cube_element(tint_index=0)]})
    asset_tree.block_state("stone", {"variants": {"": {"model": "minecraft:block/stone"}}})
    asset_tree.block_state(
        "furnace",
        {
            "variants": {
                "facing=north": {"model": "block/stone"},
                "facing=east": {"model": "block/stone", "y": 90},
            }
        },
    )
    asset_tree.block_state(
        "grass",
        {
            "multipart": [
                {"apply": {"model": "grass"}},
                {"when": {"OR": [{"snowy": True}, {"age": "2"}]}, "apply": {"model": "stone", "x": 90}},
            ]
        },
    )
    asset_tree.block_state("broken", "{not json")
    asset_tree.block_state("ghost", {"variants": {"": {"model": "block/missing"}}})
    return asset_tree
