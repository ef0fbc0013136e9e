from __future__ import annotations

import json
import math
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Sequence

import numpy as np

from ..log_writer import logger
from .types import CompiledBlockState, RenderableModel, StateGroup

MISSING_STATE_VALUE = "<n/a>"


def format_double(value: float) -> str:
    """Render a float the way the web viewer's data files always have.

    Magnitudes in ``[1e-3, 1e7)`` print as plain decimals (``0.5``,
    ``16.0``); everything else uses a mantissa and ``E`` exponent
    (``1.0E-4``, ``-4.371138828673793E-8``).
    """

    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0.0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"
    if 1e-3 <= abs(value) < 1e7:
        return repr(value)

    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    text = "".join(str(digit) for digit in digits)
    power = len(digits) + exponent - 1
    mantissa = f"{text[0]}.{text[1:] or '0'}"
    return f"{'-' if sign else ''}{mantissa}E{power}"


def variant_states(variant_name: str) -> List[StateGroup]:
    """Turn ``facing=north,lit=true`` into the single state group it names."""

    segments = variant_name.split(",")
    while len(segments) > 1 and not segments[-1]:
        segments.pop()
    pairs = []
    for pair in segments:
        parts = pair.split("=")
        while len(parts) > 1 and not parts[-1]:
            parts.pop()
        value = parts[1] if len(parts) == 2 else MISSING_STATE_VALUE
        pairs.append((parts[0], value))
    return [tuple(pairs)]


def _string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _states_json(states: Iterable[StateGroup]) -> str:
    groups = []
    for group in states:
        fields = ",".join(f"{_string(key)}:{_string(value)}" for key, value in group)
        groups.append("{" + fields + "}")
    return "[" + ",".join(groups) + "]"


def _entry_json(model: RenderableModel, conditional_or: bool, states: Sequence[StateGroup]) -> str:
    data = ",".join(format_double(v) for v in model.flat().astype(np.float32).tolist())
    return (
        '{"when":{"conditionalOr":'
        + ("true" if conditional_or else "false")
        + ',"states":'
        + _states_json(states)
        + '},"apply":{"data":['
        + data
        + '],"tintindex":'
        + ("true" if model.uses_tint else "false")
        + "}}"
    )


def encode_block_state(compiled: CompiledBlockState) -> str:
    """Compact web-viewer JSON for one compiled block state."""

    state = compiled.state
    entries: List[str] = []
    if state.uses_multipart:
        for part, models in zip(state.multiparts or (), compiled.models):
            for model in models:
                entries.append(_entry_json(model, part.conditional_or, part.states))
    else:
        for variant, models in zip(state.variants, compiled.models):
            states = variant_states(variant.name)
            for model in models:
                entries.append(_entry_json(model, False, states))
    return '{"data":[' + ",".join(entries) + "]}"


def write_block_state(compiled: CompiledBlockState, output_dir: Path) -> Path:
    target_dir = Path(output_dir) / "blockstates"
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{compiled.state.name}.json"
    target.write_text(encode_block_state(compiled), encoding="utf-8")
    logger(f"write_block_state: wrote {target}", level="debug")
    return target
