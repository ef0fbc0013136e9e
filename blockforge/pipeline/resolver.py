from __future__ import annotations

import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .errors import (
    AssetIOError,
    AssetParseError,
    BlockForgeError,
    CircularParentError,
    CompileReport,
    ResolutionError,
)
from .types import (
    BlockModel,
    BlockState,
    Direction,
    Element,
    Face,
    ModelPlacement,
    Multipart,
    StateGroup,
    Variant,
    Vec3,
)

VALID_AXES = ("x", "y", "z")
VALID_ANGLES = (-45.0, -22.5, 0.0, 22.5, 45.0)
QUARTER_TURNS = (0, 90, 180, 270)
COORD_MIN, COORD_MAX = -16.0, 32.0


def normalize_model_name(name: str) -> str:
    name = str(name).strip()
    if ":" in name:
        name = name.split(":", 1)[1]
    if name.startswith("block/"):
        name = name[len("block/") :]
    return name


def normalize_texture_path(path: str) -> str:
    """Turn a model texture reference into an atlas key such as ``block/stone``."""

    path = str(path).strip()
    if ":" in path:
        path = path.split(":", 1)[1]
    path = path.lstrip("/").replace("\\", "/")
    if path.endswith(".png"):
        path = path[:-4]
    if path.startswith("textures/"):
        path = path[len("textures/") :]
    if path.startswith("blocks/"):
        path = "block/" + path[len("blocks/") :]
    if "/" not in path:
        path = f"block/{path}"
    return path


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _vector(value: Any, size: int, field_name: str) -> Tuple[float, ...]:
    if not isinstance(value, (list, tuple)) or len(value) != size:
        raise AssetParseError(f"'{field_name}' must be a list of {size} numbers")
    try:
        return tuple(float(component) for component in value)
    except (TypeError, ValueError):
        raise AssetParseError(f"'{field_name}' must contain numbers") from None


def _point(value: Any, field_name: str) -> Vec3:
    point = _vector(value, 3, field_name)
    if any(c < COORD_MIN or c > COORD_MAX for c in point):
        raise AssetParseError(f"'{field_name}' outside [{COORD_MIN:g}, {COORD_MAX:g}]")
    return point  # type: ignore[return-value]


def _quarter_turn(value: Any, field_name: str) -> int:
    try:
        rotation = int(value)
    except (TypeError, ValueError):
        raise AssetParseError(f"'{field_name}' must be an integer") from None
    rotation %= 360
    if rotation not in QUARTER_TURNS:
        raise AssetParseError(f"'{field_name}' must be a multiple of 90, got {value}")
    return rotation


def parse_face(direction: Direction, data: Mapping[str, Any], from_: Vec3, to: Vec3) -> Face:
    if not isinstance(data, Mapping):
        raise AssetParseError(f"face '{direction.value}' must be an object")
    texture = data.get("texture")
    if not isinstance(texture, str) or not texture:
        raise AssetParseError(f"face '{direction.value}' has no texture")
    if data.get("uv") is not None:
        uv = _vector(data["uv"], 4, "uv")
    else:
        uv = direction.default_uv(from_, to)
    cull_face = None
    if data.get("cullface"):
        try:
            cull_face = Direction.parse(data["cullface"])
        except ValueError as exc:
            raise AssetParseError(str(exc)) from None
    try:
        tint_index = int(data.get("tintindex", -1))
    except (TypeError, ValueError):
        raise AssetParseError("'tintindex' must be an integer") from None
    return Face(
        uv=uv,  # type: ignore[arg-type]
        texture=texture,
        cull_face=cull_face,
        rotation=_quarter_turn(data.get("rotation", 0), "rotation"),
        tint_index=tint_index,
    )


def parse_element(data: Mapping[str, Any]) -> Element:
    if not isinstance(data, Mapping):
        raise AssetParseError("element must be an object")
    if "from" not in data or "to" not in data:
        raise AssetParseError("element requires 'from' and 'to'")
    from_ = _point(data["from"], "from")
    to = _point(data["to"], "to")

    origin: Vec3 = (8.0, 8.0, 8.0)
    axis, angle, rescale = "y", 0.0, False
    rotation = data.get("rotation")
    if rotation is not None:
        if not isinstance(rotation, Mapping):
            raise AssetParseError("'rotation' must be an object")
        origin = _vector(rotation.get("origin", [8, 8, 8]), 3, "origin")  # type: ignore[assignment]
        axis = str(rotation.get("axis", "")).lower()
        if axis not in VALID_AXES:
            raise AssetParseError(f"unknown rotation axis {rotation.get('axis')!r}")
        try:
            angle = float(rotation.get("angle", 0))
        except (TypeError, ValueError):
            raise AssetParseError("'angle' must be a number") from None
        if not any(math.isclose(angle, valid) for valid in VALID_ANGLES):
            raise AssetParseError(f"unsupported rotation angle {angle:g}")
        rescale = bool(rotation.get("rescale", False))

    faces_data = data.get("faces")
    if not isinstance(faces_data, Mapping):
        raise AssetParseError("element requires a 'faces' object")
    faces: Dict[Direction, Face] = {}
    for key, face_data in faces_data.items():
        try:
            direction = Direction.parse(key)
        except ValueError as exc:
            raise AssetParseError(str(exc)) from None
        faces[direction] = parse_face(direction, face_data, from_, to)

    return Element(
        from_=from_,
        to=to,
        faces=faces,
        origin=origin,
        axis=axis,
        angle=angle,
        rescale=rescale,
        shade=bool(data.get("shade", True)),
    )


def parse_placement(data: Any) -> ModelPlacement:
    if not isinstance(data, Mapping) or not isinstance(data.get("model"), str):
        raise AssetParseError("model placement requires a 'model' string")
    try:
        weight = int(data.get("weight", 1))
    except (TypeError, ValueError):
        raise AssetParseError("'weight' must be an integer") from None
    if weight < 1:
        raise AssetParseError(f"'weight' must be at least 1, got {weight}")
    return ModelPlacement(
        model_name=normalize_model_name(data["model"]),
        x=_quarter_turn(data.get("x", 0), "x"),
        y=_quarter_turn(data.get("y", 0), "y"),
        uvlock=bool(data.get("uvlock", False)),
        weight=weight,
    )


def _placements(data: Any) -> Tuple[ModelPlacement, ...]:
    if isinstance(data, list):
        return tuple(parse_placement(item) for item in data)
    return (parse_placement(data),)


def _state_group(data: Any) -> StateGroup:
    if not isinstance(data, Mapping):
        raise AssetParseError("'when' conditions must be objects")
    return tuple((str(key), _as_text(value)) for key, value in data.items())


def parse_block_state(name: str, data: Any) -> BlockState:
    if not isinstance(data, Mapping):
        raise AssetParseError(f"block state {name} must be an object")

    variants: List[Variant] = []
    variants_data = data.get("variants")
    if variants_data is not None:
        if not isinstance(variants_data, Mapping):
            raise AssetParseError("'variants' must be an object")
        for variant_name, variant_data in variants_data.items():
            variants.append(Variant(str(variant_name), _placements(variant_data)))

    multiparts: Optional[List[Multipart]] = None
    multipart_data = data.get("multipart")
    if multipart_data is not None:
        if not isinstance(multipart_data, list):
            raise AssetParseError("'multipart' must be a list")
        multiparts = []
        for part in multipart_data:
            if not isinstance(part, Mapping) or "apply" not in part:
                raise AssetParseError("multipart entry requires 'apply'")
            when = part.get("when")
            states: Tuple[StateGroup, ...] = ()
            conditional_or = False
            if when is not None:
                if isinstance(when, Mapping) and "OR" in when:
                    if not isinstance(when["OR"], list):
                        raise AssetParseError("'OR' must be a list")
                    states = tuple(_state_group(group) for group in when["OR"])
                    conditional_or = True
                else:
                    states = (_state_group(when),)
            multiparts.append(Multipart(_placements(part["apply"]), states, conditional_or))

    if variants_data is None and multipart_data is None:
        raise AssetParseError(f"block state {name} has neither 'variants' nor 'multipart'")
    return BlockState(
        name=name,
        variants=tuple(variants),
        multiparts=tuple(multiparts) if multiparts is not None else None,
    )


class ModelResolver:
    """Memoized arena of block models keyed by normalised name.

    Parents are stored as keys into the arena, so a cycle shows up as a name
    that is still being resolved when it is requested again.
    """

    def __init__(
        self,
        load_model_json: Callable[[str], Any],
        report: Optional[CompileReport] = None,
    ) -> None:
        self._load_model_json = load_model_json
        self._report = report if report is not None else CompileReport()
        self._models: Dict[str, BlockModel] = {}
        self._failures: Dict[str, BlockForgeError] = {}
        self._resolving: List[str] = []

    @property
    def models(self) -> Mapping[str, BlockModel]:
        return self._models

    def get(self, name: str) -> Optional[BlockModel]:
        return self._models.get(normalize_model_name(name))

    def resolve_model(self, name: str) -> BlockModel:
        key = normalize_model_name(name)
        if key in self._models:
            return self._models[key]
        if key in self._failures:
            raise self._failures[key]
        if key in self._resolving:
            chain = " -> ".join(self._resolving[self._resolving.index(key) :] + [key])
            raise CircularParentError(f"circular parent reference: {chain}")

        self._resolving.append(key)
        try:
            model = self._build_model(key)
        except BlockForgeError as exc:
            self._failures[key] = exc
            raise
        finally:
            self._resolving.pop()
        self._models[key] = model
        return model

    def _build_model(self, key: str) -> BlockModel:
        try:
            data = self._load_model_json(key)
        except FileNotFoundError:
            raise ResolutionError(f"model {key} not found") from None
        except OSError as exc:
            raise AssetIOError(f"model {key}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise AssetParseError(f"model {key} must be a JSON object")

        parent_key = None
        if data.get("parent") is not None:
            parent_key = normalize_model_name(data["parent"])
            try:
                self.resolve_model(parent_key)
            except (AssetParseError, AssetIOError) as exc:
                raise ResolutionError(f"model {key}: parent {parent_key} unavailable ({exc})") from exc

        textures_data = data.get("textures") or {}
        if not isinstance(textures_data, Mapping):
            raise AssetParseError(f"model {key}: 'textures' must be an object")
        textures = {str(alias): str(value) for alias, value in textures_data.items()}

        elements: List[Element] = []
        elements_data = data.get("elements") or []
        if not isinstance(elements_data, list):
            raise AssetParseError(f"model {key}: 'elements' must be a list")
        for index, element_data in enumerate(elements_data):
            try:
                elements.append(parse_element(element_data))
            except AssetParseError as exc:
                self._report.add("parse", f"{key}#element{index}", str(exc))

        return BlockModel(
            name=key,
            parent=parent_key,
            ambient_occlusion=bool(data.get("ambientocclusion", True)),
            textures=textures,
            elements=tuple(elements),
        )

    def chain(self, model: BlockModel) -> List[BlockModel]:
        """The model followed by its ancestors, nearest first."""
        models = [model]
        parent = model.parent
        while parent is not None:
            current = self._models[parent]
            models.append(current)
            parent = current.parent
        return models

    def effective_elements(self, model: BlockModel) -> Tuple[Element, ...]:
        for current in self.chain(model):
            if current.elements:
                return current.elements
        return ()

    def resolve_texture_id(self, model: BlockModel, ref: str) -> str:
        seen: Set[str] = set()
        while ref.startswith("#"):
            alias = ref[1:]
            if alias in seen:
                raise ResolutionError(f"model {model.name}: texture alias loop at #{alias}")
            seen.add(alias)
            for current in self.chain(model):
                if alias in current.textures:
                    ref = current.textures[alias]
                    break
            else:
                raise ResolutionError(f"model {model.name}: unresolved texture #{alias}")
        return normalize_texture_path(ref)
