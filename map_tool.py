"""
Map Tool — command-line front end for the map, BSP and WAD readers.

Subcommands:
    roundtrip IN.map OUT.map     parse a map and write it back in canonical form
    bsp-info  FILE.bsp           map name, lighting/vis presence, entity count
    wad-list  FILE.wad           every entry with declared and decoded kind
    wad-extract FILE.wad OUTDIR  write textures and images as PNG files

Usage:
    python map_tool.py roundtrip e1m1.map e1m1_out.map
    python map_tool.py --verbose bsp-info maps/e1m1.bsp
    python map_tool.py wad-extract gfx.wad dump --palette gfx/palette.lmp
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
from PIL import Image as PILImage

from bsp_reader import BSPLump, BSPReader
from logging_config import setup_logging
from lump_reader import Image, LumpKind, parse_palette
from qmap_errors import BinaryParseError, MapError
from qmap_parser import MapParser
from qmap_writer import MapWriter
from wad_reader import WADReader

logger = logging.getLogger(__name__)

# Raw (headerless) lumps in gfx.wad with known dimensions
FLAT_DIMENSIONS = {
    'CONCHARS': (128, 128),
    'CONBACK': (320, 200),
}


def cmd_roundtrip(args: argparse.Namespace) -> int:
    qmap = MapParser().parse_file(args.input)
    logger.info("Parsed %d entities from %s", len(qmap.entities), args.input)
    MapWriter().write_file(qmap, args.output)
    print(f"Wrote {args.output}")
    return 0


def cmd_bsp_info(args: argparse.Namespace) -> int:
    bsp = BSPReader(args.bsp)
    lighting = "No" if bsp.lump_empty(BSPLump.LIGHTING) else "Yes"
    vis = "No" if bsp.lump_empty(BSPLump.VISIBILITY) else "Yes"
    qmap = bsp.parse_entities()

    map_name = "<None>"
    world = qmap.worldspawn
    if world is not None and b'message' in world.edict:
        map_name = '"' + world.edict[b'message'].decode('latin-1') + '"'

    print(f"Map Name: {map_name}")
    print(f"Version:  {'BSP2' if bsp.is_bsp2 else bsp.version}")
    print(f"Lighting: {lighting}")
    print(f"VIS:      {vis}")
    print(f"Entities: {len(qmap.entities)}")
    return 0


def cmd_wad_list(args: argparse.Namespace) -> int:
    wad = WADReader(args.wad)
    for warning in wad.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    print(f"{'Name':<16} | {'Declared':<8} | {'Decoded':<8}")
    print("-" * 38)
    for name, entry in wad.directory.items():
        try:
            decoded = wad.parse_inferred(entry).kind.name
        except BinaryParseError as e:
            decoded = "<error>"
            logger.warning("`%s`: %s", name, e)
        print(f"{name:<16} | {entry.kind.name:<8} | {decoded:<8}")
    return 0


def _find_palette(wad: WADReader, palette_path: Optional[str]) -> np.ndarray:
    if palette_path:
        with open(palette_path, 'rb') as f:
            return parse_palette(f)
    for name, entry in wad.directory.items():
        if entry.kind == LumpKind.PALETTE:
            logger.info("Using palette lump `%s`", name)
            return wad.parse_palette(entry)
    raise BinaryParseError("No palette lump in WAD; pass --palette")


def _save_png(image: Image, palette: np.ndarray, path: Path) -> None:
    if image.width == 0 or image.height == 0:
        logger.warning("Skipping empty image %s", path.name)
        return
    PILImage.fromarray(image.to_rgb(palette)).save(path)
    print(f"Wrote {path}")


def cmd_wad_extract(args: argparse.Namespace) -> int:
    wad = WADReader(args.wad)
    palette = _find_palette(wad, args.palette)
    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    for name, entry in wad.directory.items():
        lump = wad.parse_inferred(entry)
        safe_name = name.replace('*', '_').replace('/', '_')
        if lump.kind == LumpKind.MIPTEX:
            for level, mip in enumerate(lump.data.mips):
                _save_png(mip, palette, out_dir / f"{safe_name}.{level}.png")
        elif lump.kind == LumpKind.SBAR:
            _save_png(lump.data, palette, out_dir / f"{safe_name}.png")
        elif lump.kind == LumpKind.FLAT:
            dims = FLAT_DIMENSIONS.get(name)
            if dims is None or dims[0] * dims[1] != len(lump.data):
                logger.warning("Unknown flat lump `%s`, skipped", name)
                continue
            image = Image.from_pixels(dims[0], lump.data)
            _save_png(image, palette, out_dir / f"{safe_name}.png")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Quake .map / .bsp / .wad utilities")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--log-file", default=None,
                        help="Also write the log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("roundtrip", help="Parse a .map and write it back")
    p.add_argument("input", help="Input .map file")
    p.add_argument("output", help="Output .map file")
    p.set_defaults(func=cmd_roundtrip)

    p = sub.add_parser("bsp-info", help="Summarize a compiled .bsp")
    p.add_argument("bsp", help="Input .bsp file")
    p.set_defaults(func=cmd_bsp_info)

    p = sub.add_parser("wad-list", help="List the entries of a .wad")
    p.add_argument("wad", help="Input .wad file")
    p.set_defaults(func=cmd_wad_list)

    p = sub.add_parser("wad-extract", help="Write .wad images as PNG files")
    p.add_argument("wad", help="Input .wad file")
    p.add_argument("output_dir", help="Directory for the PNG files")
    p.add_argument("--palette", default=None,
                   help="palette.lmp to use if the WAD has no palette lump")
    p.set_defaults(func=cmd_wad_extract)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO,
                  args.log_file)
    try:
        return args.func(args)
    except (MapError, BinaryParseError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
