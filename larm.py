#!/usr/bin/env python3
"""
Larm -- 3D Film Grain
CLI entry point.

Usage:
    python larm.py apply photo.jpg -o grain.png --size 25 --intensity 0.8
    python larm.py params
    python larm.py serve --port 8080
    python larm.py ui
    python larm.py desktop
"""

import argparse
import os
import sys
import time

# Add project root to path so imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import LOG_LEVEL
from core.engine import load_engine, render_tier
from core.imaging import decode_image, save_png
from core.logging_config import setup_logging
from core.params import EffectParameters, INTEGER_PARAMS, PARAM_ORDER, PARAM_RANGES, PARAM_SECTIONS
from core.safety import preflight, validate_params
from core.tiers import build_original

__version__ = "0.1.0"


def _flag(name: str) -> str:
    return "--" + name.replace("_", "-")


def params_from_args(args) -> EffectParameters:
    """Collect parameter flags into a validated EffectParameters."""
    data = {name: getattr(args, name) for name in PARAM_ORDER}
    return validate_params(EffectParameters(**data))


def cmd_apply(args):
    """Render grain over a whole image at native resolution."""
    params = params_from_args(args)
    info = preflight(args.input)

    print(f"1. Loading {args.input} ({info['size_mb']:.1f}MB)...")
    source = decode_image(info["path"])

    print(f"2. Allocating buffers ({source.width}x{source.height}, "
          f"{source.width * source.height * 3} bytes each)...")
    tier = build_original(source)

    print("3. Calling native engine...")
    engine = load_engine(args.engine)
    start = time.perf_counter()
    image = render_tier(engine, tier, params)
    print(f"   Engine finished in {(time.perf_counter() - start) * 1000:.0f}ms")

    path = save_png(image, args.output)
    print(f"4. Saved to {path}")


def cmd_params(args):
    """List every parameter with its default and valid range."""
    defaults = EffectParameters()
    for section, fields in PARAM_SECTIONS:
        print(f"\n{section}")
        for name, label in fields:
            lo, hi = PARAM_RANGES[name]
            kind = "int" if name in INTEGER_PARAMS else "float"
            print(f"  {_flag(name):<20} {label:<16} default {getattr(defaults, name):<8g} "
                  f"range {lo:g}..{hi:g} ({kind})")


def cmd_serve(args):
    """Run the HTTP API."""
    from server import run
    run(host=args.host, port=args.port, log_level=args.log_level)


def cmd_ui(args):
    """Launch the Gradio studio."""
    from gradio_ui import launch_ui
    launch_ui(port=args.port)


def cmd_desktop(args):
    """Launch the studio in a native window."""
    from desktop import main as desktop_main
    desktop_main()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="larm",
        description="Larm -- 3D film grain for photographs",
    )
    parser.add_argument("--version", action="version", version=f"larm {__version__}")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command")

    # apply
    p = sub.add_parser("apply", help="Apply grain to an image at full resolution")
    p.add_argument("input", help="Input image (JPEG, PNG, TIFF, ...)")
    p.add_argument("-o", "--output", default="output.png", help="Output PNG path")
    p.add_argument("--engine", default=None, help="Path to the native engine library")
    defaults = EffectParameters()
    for name in PARAM_ORDER:
        lo, hi = PARAM_RANGES[name]
        p.add_argument(
            _flag(name),
            dest=name,
            type=float,
            default=getattr(defaults, name),
            help=f"{lo:g}..{hi:g} (default: %(default)s)",
        )

    # params
    sub.add_parser("params", help="List grain parameters, defaults and ranges")

    # serve
    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    # ui
    p = sub.add_parser("ui", help="Launch Gradio visual interface")
    p.add_argument("--port", type=int, default=7860)

    # desktop
    sub.add_parser("desktop", help="Launch the visual interface in a native window")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    commands = {
        "apply": cmd_apply,
        "params": cmd_params,
        "serve": cmd_serve,
        "ui": cmd_ui,
        "desktop": cmd_desktop,
    }

    if args.command in commands:
        try:
            commands[args.command](args)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
