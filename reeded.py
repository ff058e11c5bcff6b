#!/usr/bin/env python3
"""
Reeded -- Glass Effect Engine
CLI entry point. Also importable as a library.

Usage:
    python reeded.py apply photo.jpg --reed-width 30 --amplitude 12 --lighting 25
    python reeded.py apply photo.jpg --preset "Frosted Reed" -o frosted.png
    python reeded.py preview photo.jpg --viewport 800x600 -o preview.png
    python reeded.py list-presets
    python reeded.py info
    python reeded.py ui
"""

import argparse
import logging
import os
import sys
import time

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.image_io import EXPORT_FORMATS, export_filename, format_for_path, load_bitmap, save_bitmap
from core.preview import render_preview
from effects import EFFECTS, CATEGORIES, resolve_params, run_pipeline
from presets import BUILT_IN_PRESETS, get_preset, load_user_presets

__version__ = "0.1.0"

logger = logging.getLogger("reeded")


def _parse_viewport(val: str) -> tuple[int, int]:
    """Parse 'WxH' into (W, H)."""
    try:
        w, h = (int(p) for p in val.lower().split("x", 1))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Viewport must look like 800x600, got: {val}")
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError(f"Viewport must be positive, got: {val}")
    return w, h


def _params_from_args(args) -> dict:
    """Preset (if any) overlaid with explicit flags, validated."""
    params = {}
    if args.preset:
        preset = get_preset(args.preset)
        if preset is None:
            names = ", ".join(p["name"] for p in BUILT_IN_PRESETS)
            raise ValueError(f"Unknown preset: {args.preset}. Available: {names}")
        params.update(preset["params"])
    overrides = {
        "blur_radius": args.blur,
        "reed_width": args.reed_width,
        "amplitude": args.amplitude,
        "lighting_intensity": args.lighting,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    return resolve_params(**params)


def _process(args):
    source = load_bitmap(args.input)
    params = _params_from_args(args)
    h, w = source.shape[:2]
    print(f"Loaded {args.input} ({w}x{h})")
    params_str = ", ".join(f"{k}={v}" for k, v in params.items())
    print(f"  Params: {params_str}")

    start = time.time()
    result = run_pipeline(source, workers=args.workers, **params)
    logger.debug("Pipeline finished in %.3fs", time.time() - start)
    return result


def cmd_apply(args):
    """Apply the glass effect at full resolution and save it."""
    # Check the output name before any pixel work
    fmt = format_for_path(args.output) if args.output else args.format
    result = _process(args)
    output = args.output or export_filename(fmt)
    path = save_bitmap(result, output, fmt=fmt)
    size_kb = path.stat().st_size / 1024
    print(f"Output: {path} ({size_kb:.0f}KB)")


def cmd_preview(args):
    """Apply the glass effect and save a copy scaled to fit a viewport."""
    output = args.output or f"preview-{int(time.time() * 1000)}.png"
    fmt = format_for_path(output)
    result = _process(args)
    view_w, view_h = args.viewport
    preview = render_preview(result, view_w, view_h)
    path = save_bitmap(preview, output, fmt=fmt)
    print(f"Preview: {path} ({preview.shape[1]}x{preview.shape[0]})")


def cmd_list_presets(args):
    """List built-in and user presets."""
    print(f"\n  Glass Presets ({len(BUILT_IN_PRESETS)} built-in)")
    print(f"  {'—' * 50}")
    for p in BUILT_IN_PRESETS:
        print(f"    {p['name']:16s} [{p['category']:8s}] — {p['description']}")
        if not args.compact:
            params_str = ", ".join(f"{k}={v}" for k, v in p["params"].items())
            print(f"    {'':16s}   Params: {params_str}")

    user = load_user_presets()
    if user:
        print(f"\n  User Presets ({len(user)})")
        print(f"  {'—' * 50}")
        for p in user:
            print(f"    {p['name']:16s} — {p.get('description', '')}")
    print(f"\n  Usage: --preset <name> (flags like --amplitude override preset values)\n")


def cmd_info(args):
    """Show pipeline stages, defaults and slider ranges."""
    for name, entry in EFFECTS.items():
        cat = CATEGORIES.get(entry["category"], entry["category"])
        print(f"\n  {name}")
        print(f"  {'—' * 40}")
        print(f"  Stage:       {cat}")
        print(f"  Description: {entry['description']}")
        print(f"\n  Parameters:")
        ranges = entry.get("param_ranges", {})
        for k, v in entry["params"].items():
            r = ranges.get(k)
            hint = f"  (range {r['min']}-{r['max']})" if r else ""
            print(f"    {k:20s} = {v}{hint}")
    print()


def cmd_ui(args):
    """Launch the HTTP backend."""
    from server import start
    start(host=args.host, port=args.port)


def _add_param_flags(p):
    p.add_argument("input", help="Path to source image")
    p.add_argument("-o", "--output", help="Output path (default: glass-effect-<ms>.<ext>)")
    p.add_argument("--preset", help="Start from a named preset")
    p.add_argument("--blur", type=float, help="Blur radius in pixels (0 = off)")
    p.add_argument("--reed-width", type=float, help="Reed width / wave period in pixels (> 0)")
    p.add_argument("--amplitude", type=float, help="Max horizontal displacement in pixels")
    p.add_argument("--lighting", type=float, help="Max brightness delta for highlight/shadow")
    p.add_argument("--workers", type=int, default=1, help="Parallel row blocks for the distortion pass")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="reeded",
        description="Reeded: reeded glass distortion and lighting for images",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # apply
    p = sub.add_parser("apply", help="Apply the glass effect at full resolution")
    _add_param_flags(p)
    p.add_argument("--format", choices=sorted(EXPORT_FORMATS), default="png",
                   help="Output format when --output is omitted")

    # preview
    p = sub.add_parser("preview", help="Save a viewport-sized preview")
    _add_param_flags(p)
    p.add_argument("--viewport", type=_parse_viewport, default=(960, 640), help="Viewport as WxH")

    # list-presets
    p = sub.add_parser("list-presets", help="List glass presets")
    p.add_argument("--compact", action="store_true", help="Compact view (names only)")

    # info
    sub.add_parser("info", help="Show parameters, defaults and ranges")

    # ui
    p = sub.add_parser("ui", help="Launch the HTTP backend")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=7860)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    commands = {
        "apply": cmd_apply,
        "preview": cmd_preview,
        "list-presets": cmd_list_presets,
        "info": cmd_info,
        "ui": cmd_ui,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
