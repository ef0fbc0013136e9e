from __future__ import annotations

import io
import math
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
from PIL import Image

from ..log_writer import logger
from .errors import CompileReport
from .types import AtlasResult

DEFAULT_MAX_SIDE = 1 << 15

TEXTURE_DIRS = (
    "assets/minecraft/textures/block/",
    "assets/minecraft/textures/blocks/",
)


def _to_square_rgba(img) -> Image.Image:
    if isinstance(img, Image.Image):
        tile = img.convert("RGBA")
    else:
        tile = Image.fromarray(np.asarray(img, dtype=np.uint8)).convert("RGBA")
    width, height = tile.size
    if height > width:
        # Animated strips keep only their first frame.
        tile = tile.crop((0, 0, width, width))
    return tile


def check_max_side(max_side: int) -> int:
    """Atlas sides must stay powers of two, so the cap must be one as well."""

    if isinstance(max_side, bool) or not isinstance(max_side, int):
        raise ValueError(f"max atlas side must be an integer, got {max_side!r}")
    if max_side < 1 or max_side & (max_side - 1):
        raise ValueError(f"max atlas side must be a power of two >= 1, got {max_side}")
    return max_side


def atlas_side(sizes: List[Tuple[int, int]], max_side: int = DEFAULT_MAX_SIDE) -> int:
    """Smallest power of two covering both the total area and the largest tile."""

    check_max_side(max_side)
    if not sizes:
        return 1
    total_area = sum(w * h for w, h in sizes)
    largest = max(max(w, h) for w, h in sizes)
    needed = max(math.ceil(math.sqrt(total_area)), largest)
    side = 1
    while side < needed:
        side <<= 1
    return min(side, max_side)


def _find_free_spot(
    occupied: np.ndarray, width: int, height: int
) -> Optional[Tuple[int, int]]:
    side = occupied.shape[0]
    if width > side or height > side:
        return None
    # Summed-area table with a zero border: window sums for every top-left.
    table = np.zeros((side + 1, side + 1), dtype=np.int64)
    table[1:, 1:] = occupied.cumsum(axis=0).cumsum(axis=1)
    windows = (
        table[height:, width:]
        - table[:-height, width:]
        - table[height:, :-width]
        + table[:-height, :-width]
    )
    free = windows == 0
    if not free.any():
        return None
    # Row-major: y is the outer loop, x the inner one.
    flat_index = int(np.argmax(free))
    y, x = divmod(flat_index, free.shape[1])
    return x, y


def pack_textures(
    images: Mapping[str, object],
    max_side: int = DEFAULT_MAX_SIDE,
    report: Optional[CompileReport] = None,
) -> AtlasResult:
    check_max_side(max_side)
    if not images:
        blank = Image.new("RGBA", (1, 1), (0, 0, 0, 0))
        return AtlasResult(blank, {}, side=1)

    tiles = {name: _to_square_rgba(img) for name, img in images.items()}
    side = atlas_side([tile.size for tile in tiles.values()], max_side)

    # Area descending, name ascending for equal areas.
    order = sorted(tiles, key=lambda name: (-tiles[name].size[0] * tiles[name].size[1], name))

    atlas = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    occupied = np.zeros((side, side), dtype=bool)
    uv_rects: Dict[str, Tuple[float, float, float, float]] = {}
    missing: List[str] = []

    for name in order:
        tile = tiles[name]
        width, height = tile.size
        spot = _find_free_spot(occupied, width, height)
        if spot is None:
            missing.append(name)
            message = f"no room for {width}x{height} texture in {side}x{side} atlas"
            if report is not None:
                report.add("packing", name, message)
            else:
                logger(f"pack_textures: {name}: {message}", level="warning")
            continue
        x, y = spot
        occupied[y : y + height, x : x + width] = True
        atlas.paste(tile, (x, y))
        uv_rects[name] = (
            x / side,
            y / side,
            (x + width) / side,
            (y + height) / side,
        )

    logger(f"pack_textures: packed {len(uv_rects)} textures into {side}x{side} atlas")
    return AtlasResult(atlas, uv_rects, side=side, missing=tuple(missing))


def texture_key_for_path(relative_path: str) -> Optional[str]:
    """Map an asset path to the atlas key used by block models."""

    normalized = relative_path.replace("\\", "/")
    for prefix in TEXTURE_DIRS:
        if normalized.startswith(prefix) and normalized.endswith(".png"):
            stem = normalized[len(prefix) : -len(".png")]
            if "/" in stem or not stem:
                return None
            return f"block/{stem}"
    return None


def load_textures(bundle, report: CompileReport) -> Dict[str, Image.Image]:
    """Read every block texture from the bundle; unreadable files are skipped."""

    textures: Dict[str, Image.Image] = {}
    for directory in TEXTURE_DIRS:
        for relative_path in bundle.list_files(directory, ".png"):
            key = texture_key_for_path(relative_path)
            if key is None or key in textures:
                continue
            try:
                data = bundle.read_bytes(relative_path)
            except OSError as exc:
                report.add("io", relative_path, str(exc))
                continue
            if data is None:
                continue
            try:
                with Image.open(io.BytesIO(data)) as img:
                    textures[key] = img.convert("RGBA")
            except (OSError, ValueError) as exc:
                report.add("io", relative_path, f"unreadable image: {exc}")
    return textures
