from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np
from PIL import Image

Vec3 = Tuple[float, float, float]
UVRect = Tuple[float, float, float, float]

# Interleaved vertex layout: pos.xyz, uv.xy, normal.xyz, color.rgb
VERTEX_STRIDE = 11
VERTICES_PER_FACE = 6
POSITION = slice(0, 3)
UV = slice(3, 5)
NORMAL = slice(5, 8)
COLOR = slice(8, 11)


class Direction(str, Enum):
    DOWN = "down"
    UP = "up"
    NORTH = "north"
    SOUTH = "south"
    WEST = "west"
    EAST = "east"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown face direction: {value!r}") from None

    @property
    def normal(self) -> Vec3:
        return _NORMALS[self]

    @property
    def z_face(self) -> bool:
        """West/east quads span z instead of x between their two corners."""
        return self in (Direction.WEST, Direction.EAST)

    def corners(self, from_: Vec3, to: Vec3) -> Tuple[Vec3, Vec3]:
        return _CORNERS[self](from_, to)

    def default_uv(self, from_: Vec3, to: Vec3) -> UVRect:
        return _DEFAULT_UVS[self](from_, to)


_NORMALS: Dict[Direction, Vec3] = {
    Direction.DOWN: (0.0, -1.0, 0.0),
    Direction.UP: (0.0, 1.0, 0.0),
    Direction.NORTH: (0.0, 0.0, -1.0),
    Direction.SOUTH: (0.0, 0.0, 1.0),
    Direction.WEST: (-1.0, 0.0, 0.0),
    Direction.EAST: (1.0, 0.0, 0.0),
}

_CornerRule = Callable[[Vec3, Vec3], Tuple[Vec3, Vec3]]
_CORNERS: Dict[Direction, _CornerRule] = {
    Direction.DOWN: lambda f, t: ((t[0], f[1], f[2]), (f[0], f[1], t[2])),
    Direction.UP: lambda f, t: ((f[0], t[1], f[2]), (t[0], t[1], t[2])),
    Direction.NORTH: lambda f, t: ((t[0], t[1], f[2]), (f[0], f[1], f[2])),
    Direction.SOUTH: lambda f, t: ((f[0], t[1], t[2]), (t[0], f[1], t[2])),
    Direction.WEST: lambda f, t: ((f[0], t[1], f[2]), (f[0], f[1], t[2])),
    Direction.EAST: lambda f, t: ((t[0], t[1], t[2]), (t[0], f[1], f[2])),
}

_UVRule = Callable[[Vec3, Vec3], UVRect]
_DEFAULT_UVS: Dict[Direction, _UVRule] = {
    Direction.DOWN: lambda f, t: (t[0], f[2], f[0], t[2]),
    Direction.UP: lambda f, t: (f[0], f[2], t[0], t[2]),
    Direction.NORTH: lambda f, t: (t[0], 16.0 - t[1], f[0], 16.0 - f[1]),
    Direction.SOUTH: lambda f, t: (f[0], 16.0 - t[1], t[0], 16.0 - f[1]),
    Direction.WEST: lambda f, t: (f[2], 16.0 - t[1], t[2], 16.0 - f[1]),
    Direction.EAST: lambda f, t: (t[2], 16.0 - t[1], f[2], 16.0 - f[1]),
}


@dataclass(frozen=True)
class Face:
    uv: UVRect
    texture: str  # concrete path or "#alias"
    cull_face: Optional[Direction] = None
    rotation: int = 0
    tint_index: int = -1


@dataclass(frozen=True)
class Element:
    from_: Vec3
    to: Vec3
    faces: Mapping[Direction, Face]
    origin: Vec3 = (8.0, 8.0, 8.0)
    axis: str = "y"
    angle: float = 0.0
    rescale: bool = False
    shade: bool = True


@dataclass(frozen=True)
class BlockModel:
    name: str
    parent: Optional[str]  # arena key of the parent model
    ambient_occlusion: bool
    textures: Mapping[str, str]
    elements: Tuple[Element, ...]


@dataclass(frozen=True)
class ModelPlacement:
    model_name: str
    x: int = 0
    y: int = 0
    uvlock: bool = False
    weight: int = 1


@dataclass(frozen=True)
class Variant:
    name: str
    placements: Tuple[ModelPlacement, ...]


StateGroup = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Multipart:
    placements: Tuple[ModelPlacement, ...]
    states: Tuple[StateGroup, ...]
    conditional_or: bool


@dataclass(frozen=True)
class BlockState:
    name: str
    variants: Tuple[Variant, ...] = ()
    multiparts: Optional[Tuple[Multipart, ...]] = None

    @property
    def uses_multipart(self) -> bool:
        return self.multiparts is not None


@dataclass
class AtlasResult:
    image: Image.Image
    uv_rects: Dict[str, UVRect]
    side: int = 0
    missing: Tuple[str, ...] = ()

    def lookup(self, name: str) -> Optional[UVRect]:
        return self.uv_rects.get(name)


@dataclass
class RenderableBlockModel:
    vertices: np.ndarray  # float32, shape (n, VERTEX_STRIDE)
    tint_indices: np.ndarray  # int32, one entry per face
    ambient_occlusion: bool = True

    @property
    def face_count(self) -> int:
        return len(self.vertices) // VERTICES_PER_FACE

    @property
    def uses_tint(self) -> bool:
        return bool(np.any(self.tint_indices != -1))


@dataclass
class RenderableModel:
    placement: ModelPlacement
    vertices: np.ndarray
    uses_tint: bool = False

    def flat(self) -> np.ndarray:
        return self.vertices.reshape(-1)


@dataclass
class GLBResult:
    glb_bytes: bytes
    center: Tuple[float, float, float]
    size: Tuple[float, float, float]


@dataclass
class CompiledBlockState:
    state: BlockState
    # One list per variant (or multipart entry), in declaration order.
    models: List[List[RenderableModel]] = field(default_factory=list)
