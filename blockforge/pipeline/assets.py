from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import AssetIOError, AssetParseError

MODELS_DIR = "assets/minecraft/models/block/"
BLOCKSTATES_DIR = "assets/minecraft/blockstates/"


class _AssetSource:
    """Thin wrapper around either a directory or a .zip/.jar archive."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._is_dir = path.is_dir()
        self._zip: zipfile.ZipFile | None = None
        if not self._is_dir:
            self._zip = zipfile.ZipFile(str(path))

    def read_bytes(self, relative_path: str) -> Optional[bytes]:
        normalized = relative_path.replace("\\", "/")
        if self._is_dir:
            file_path = self._path / Path(normalized)
            if not file_path.is_file():
                return None
            return file_path.read_bytes()
        if self._zip is None:
            return None
        try:
            with self._zip.open(normalized) as fp:
                return fp.read()
        except KeyError:
            return None

    def list_files(self, prefix: str, suffix: str) -> List[str]:
        """Files directly inside ``prefix`` (no recursion) ending in ``suffix``."""
        if self._is_dir:
            directory = self._path / Path(prefix)
            if not directory.is_dir():
                return []
            return [
                f"{prefix}{entry.name}"
                for entry in directory.iterdir()
                if entry.is_file() and entry.name.endswith(suffix)
            ]
        if self._zip is None:
            return []
        names = []
        for name in self._zip.namelist():
            if not name.startswith(prefix) or not name.endswith(suffix):
                continue
            if "/" in name[len(prefix) :]:
                continue
            names.append(name)
        return names

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None


class AssetBundle:
    """Layered view over the base assets and an optional resource pack.

    The resource pack is consulted first, so its files replace the base
    assets of the same path.
    """

    def __init__(self, assets_path: str, resource_pack_path: str | None = None) -> None:
        base = Path(assets_path)
        if not base.exists():
            raise FileNotFoundError(assets_path)
        self._sources: list[_AssetSource] = []
        if resource_pack_path:
            overlay = Path(resource_pack_path)
            if not overlay.exists():
                raise FileNotFoundError(resource_pack_path)
            self._sources.append(_AssetSource(overlay))
        self._sources.append(_AssetSource(base))

    def __enter__(self) -> "AssetBundle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        for source in self._sources:
            source.close()

    def read_bytes(self, relative_path: str) -> Optional[bytes]:
        for source in self._sources:
            data = source.read_bytes(relative_path)
            if data is not None:
                return data
        return None

    def list_files(self, prefix: str, suffix: str) -> List[str]:
        seen: Dict[str, None] = {}
        for source in self._sources:
            for name in source.list_files(prefix, suffix):
                seen.setdefault(name, None)
        return sorted(seen)

    def read_json(self, relative_path: str) -> Any:
        try:
            data = self.read_bytes(relative_path)
        except OSError as exc:
            raise AssetIOError(f"cannot read {relative_path}: {exc}") from exc
        if data is None:
            raise FileNotFoundError(relative_path)
        try:
            return json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AssetParseError(f"malformed JSON in {relative_path}: {exc}") from exc

    def load_model_json(self, name: str) -> Any:
        return self.read_json(f"{MODELS_DIR}{name}.json")

    def block_state_names(self) -> List[str]:
        return [
            path[len(BLOCKSTATES_DIR) : -len(".json")]
            for path in self.list_files(BLOCKSTATES_DIR, ".json")
        ]

    def load_block_state_json(self, name: str) -> Any:
        return self.read_json(f"{BLOCKSTATES_DIR}{name}.json")
