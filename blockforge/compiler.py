from __future__ import annotations

import zipfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from .log_writer import logger
from .pipeline.assets import AssetBundle
from .pipeline.atlas import DEFAULT_MAX_SIDE, check_max_side, load_textures, pack_textures
from .pipeline.errors import (
    AssetIOError,
    BlockForgeError,
    CompileReport,
    issue_kind,
)
from .pipeline.export import write_block_state
from .pipeline.geometry import compile_model
from .pipeline.gltf_builder import models_to_glb
from .pipeline.orientation import orient_model
from .pipeline.resolver import ModelResolver, parse_block_state
from .pipeline.types import (
    AtlasResult,
    BlockState,
    CompiledBlockState,
    ModelPlacement,
    RenderableBlockModel,
    RenderableModel,
)

ATLAS_FILE = "textures/atlas.png"
DATA_PACK_FILE = "dataPack.zip"


@dataclass(frozen=True)
class CompileOptions:
    assets_path: str
    output_dir: str
    resource_pack_path: Optional[str] = None
    max_atlas_side: int = DEFAULT_MAX_SIDE
    export_web: bool = True
    export_glb: bool = False
    compress: bool = False

    def __post_init__(self) -> None:
        check_max_side(self.max_atlas_side)

    def to_serializable(self) -> Dict[str, object]:
        data = asdict(self)
        return data


@dataclass
class CompileResult:
    atlas: AtlasResult
    block_states: Dict[str, CompiledBlockState]
    report: CompileReport
    written: List[Path] = field(default_factory=list)


class BlockCompiler:
    """Runs one asset bundle through the whole pipeline, best effort."""

    def __init__(self, options: CompileOptions, report: Optional[CompileReport] = None) -> None:
        self.options = options
        self.report = report if report is not None else CompileReport()
        self._base_models: Dict[str, RenderableBlockModel] = {}
        self._failed_models: Set[str] = set()
        self._resolver: Optional[ModelResolver] = None
        self._atlas: Optional[AtlasResult] = None

    def compile(self) -> CompileResult:
        options = self.options
        logger(f"compile: options {options.to_serializable()}", level="debug")
        try:
            bundle = AssetBundle(options.assets_path, options.resource_pack_path)
        except (OSError, zipfile.BadZipFile) as exc:
            raise AssetIOError(f"cannot open asset source: {exc}") from exc

        output_dir = Path(options.output_dir)
        written: List[Path] = []
        with bundle:
            logger("Creating texture atlas")
            textures = load_textures(bundle, self.report)
            self._atlas = pack_textures(textures, options.max_atlas_side, self.report)
            atlas_path = self._write_atlas(output_dir)
            if atlas_path is not None:
                written.append(atlas_path)

            logger("Loading block states")
            self._resolver = ModelResolver(bundle.load_model_json, self.report)
            compiled: Dict[str, CompiledBlockState] = {}
            for name in bundle.block_state_names():
                state = self._load_block_state(bundle, name)
                if state is None:
                    continue
                compiled[name] = self.compile_block_state(state)

        if options.export_web:
            logger("Exporting web block states")
            for compiled_state in compiled.values():
                path = self._guarded_write(compiled_state.state.name, write_block_state, compiled_state, output_dir)
                if path is not None:
                    written.append(path)

        if options.export_glb:
            logger("Exporting glTF previews")
            for compiled_state in compiled.values():
                path = self._guarded_write(compiled_state.state.name, self._write_glb, compiled_state, output_dir)
                if path is not None:
                    written.append(path)

        if options.compress:
            path = self._guarded_write(DATA_PACK_FILE, write_data_pack, output_dir, written)
            if path is not None:
                written.append(path)

        counts = self.report.counts()
        logger(
            f"compile: {len(compiled)} block states, {len(self._base_models)} models, "
            f"issues {counts}"
        )
        return CompileResult(self._atlas, compiled, self.report, written)

    def _load_block_state(self, bundle: AssetBundle, name: str) -> Optional[BlockState]:
        try:
            return parse_block_state(name, bundle.load_block_state_json(name))
        except (BlockForgeError, OSError) as exc:
            self.report.add(issue_kind(exc), f"blockstates/{name}", str(exc))
            return None

    def compile_block_state(self, state: BlockState) -> CompiledBlockState:
        if state.uses_multipart:
            groups = [part.placements for part in state.multiparts or ()]
        else:
            groups = [variant.placements for variant in state.variants]
        models: List[List[RenderableModel]] = []
        for placements in groups:
            oriented: List[RenderableModel] = []
            for placement in placements:
                model = self._place(state.name, placement)
                if model is not None:
                    oriented.append(model)
            models.append(oriented)
        return CompiledBlockState(state, models)

    def _place(self, state_name: str, placement: ModelPlacement) -> Optional[RenderableModel]:
        if placement.model_name in self._failed_models:
            return None
        try:
            base = self.base_model(placement.model_name)
        except BlockForgeError as exc:
            # One issue per model, however many placements use it.
            self._failed_models.add(placement.model_name)
            self.report.add(issue_kind(exc), f"{state_name}:{placement.model_name}", str(exc))
            return None
        return orient_model(base, placement)

    def base_model(self, name: str) -> RenderableBlockModel:
        """Unoriented geometry for a model, compiled once per run."""

        if name in self._base_models:
            return self._base_models[name]
        if self._resolver is None or self._atlas is None:
            raise RuntimeError("base_model called before the atlas and resolver exist")
        model = self._resolver.resolve_model(name)
        base = compile_model(model, self._resolver, self._atlas, self.report)
        self._base_models[name] = base
        return base

    def _write_atlas(self, output_dir: Path) -> Optional[Path]:
        target = output_dir / ATLAS_FILE
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._atlas.image.save(target, format="PNG")
        except OSError as exc:
            self.report.add("io", ATLAS_FILE, str(exc))
            return None
        return target

    def _write_glb(self, compiled: CompiledBlockState, output_dir: Path) -> Path:
        if compiled.state.uses_multipart:
            models = [model for part in compiled.models for model in part]
        else:
            # Variants are alternatives; preview the first one.
            models = compiled.models[0] if compiled.models else []
        glb = models_to_glb(models, self._atlas)
        target = output_dir / "models" / f"{compiled.state.name}.glb"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(glb.glb_bytes)
        return target

    def _guarded_write(self, subject: str, writer, *args) -> Optional[Path]:
        try:
            return writer(*args)
        except OSError as exc:
            self.report.add("io", subject, str(exc))
            return None


def write_data_pack(output_dir: Path, files: List[Path]) -> Path:
    target = Path(output_dir) / DATA_PACK_FILE
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in files:
            archive.write(path, path.relative_to(output_dir).as_posix())
    logger(f"write_data_pack: {len(files)} files into {target}")
    return target


def compile_bundle(options: CompileOptions, report: Optional[CompileReport] = None) -> CompileResult:
    return BlockCompiler(options, report).compile()
