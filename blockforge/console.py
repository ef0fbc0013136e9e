from __future__ import annotations

import argparse
from typing import List, Optional

from . import log_writer
from .compiler import CompileOptions, compile_bundle
from .log_writer import logger
from .pipeline.atlas import DEFAULT_MAX_SIDE, check_max_side
from .pipeline.errors import AssetIOError


def _atlas_side_arg(value: str) -> int:
    try:
        return check_max_side(int(value))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockforge",
        description="Compile block models, block states and textures into an atlas and baked meshes.",
    )
    parser.add_argument("assets", help="extracted assets directory or a .zip/.jar archive")
    parser.add_argument("-o", "--output", default="export", help="output directory (default: export)")
    parser.add_argument("--resource-pack", help="resource pack layered over the base assets")
    parser.add_argument("--glb", action="store_true", help="also write a .glb preview per block state")
    parser.add_argument("--zip", action="store_true", help="bundle the outputs into dataPack.zip")
    parser.add_argument("--no-web", action="store_true", help="skip the web block state export")
    parser.add_argument(
        "--max-atlas-side",
        type=_atlas_side_arg,
        default=DEFAULT_MAX_SIDE,
        help="largest atlas side in pixels (default: %(default)s)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log_writer.configure(args.verbose)

    options = CompileOptions(
        assets_path=args.assets,
        output_dir=args.output,
        resource_pack_path=args.resource_pack,
        max_atlas_side=args.max_atlas_side,
        export_web=not args.no_web,
        export_glb=args.glb,
        compress=args.zip,
    )
    logger(f"console: compiling {options.assets_path} into {options.output_dir}")

    try:
        result = compile_bundle(options)
    except AssetIOError as exc:
        print(f"Error: {exc}")
        return 1

    print(
        f"Compiled {len(result.block_states)} block states into a "
        f"{result.atlas.side}x{result.atlas.side} atlas."
    )
    issues = result.report.issues
    if issues:
        summary = ", ".join(f"{count} {kind}" for kind, count in result.report.counts().items() if count)
        print(f"{len(issues)} issues ({summary}):")
        for issue in issues:
            print(f"  {issue}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
