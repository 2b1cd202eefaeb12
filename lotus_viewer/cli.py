"""Command line entry point: inspect volumes, render slices, or start the GUI."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import sys
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")  # headless rendering; the GUI uses its own Qt canvas
import matplotlib.pyplot as plt
import pandas as pd

from . import config
from .compositor import RenderSpec
from .controller import ViewerController
from .coordinates import Axis, CoordinateMapper
from .errors import LotusViewerError
from .fetch import OverlayRequest, fetch_bytes
from .nifti_decoder import decode_volume
from .threshold import ThresholdMode, ThresholdSpec

LOGGER = logging.getLogger(__name__)

PLANE_FILES = {Axis.Z: "axial.png", Axis.Y: "coronal.png", Axis.X: "sagittal.png"}


def describe_volume(source: str) -> pd.DataFrame:
    """One-row summary table of the volume at *source*."""

    volume = decode_volume(fetch_bytes(source))
    mapper = CoordinateMapper(volume.dims, volume.spacing)
    return pd.DataFrame(
        [
            {
                "source": source,
                "dims": "x".join(str(d) for d in volume.dims),
                "spacing_mm": ", ".join(f"{s:g}" for s in volume.spacing),
                "min": volume.vmin,
                "max": volume.vmax,
                "canonical": mapper.canonical,
            }
        ]
    )


async def _load(controller: ViewerController, args) -> None:
    jobs = []
    if args.background:
        jobs.append(controller.load_background())
    if args.overlay:
        jobs.append(controller.load_overlay_file(args.overlay))
    elif args.query:
        request = OverlayRequest(
            args.query, voxel=args.voxel, fwhm=args.fwhm, kernel=args.kernel, radius=args.radius
        )
        jobs.append(controller.load_overlay(request))
    await asyncio.gather(*jobs)


def render_to_directory(controller: ViewerController, out_dir: Path) -> list:
    """Write the three current planes of *controller* as PNG files."""

    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for axis, plane in controller.planes.items():
        path = out_dir / PLANE_FILES[axis]
        plt.imsave(path, plane)
        written.append(path)
    return written


def run_render(args) -> int:
    controller = ViewerController(
        api_base=args.api_base,
        background_source=args.background or None,
        render=RenderSpec(
            opacity=args.opacity, positive_only=not args.all_signs, use_absolute=args.abs
        ),
        threshold=ThresholdSpec(ThresholdMode.parse(args.threshold_mode), args.threshold),
        mirror_x=not args.radiological,
    )
    asyncio.run(_load(controller, args))
    for message in controller.status_messages():
        print(message, file=sys.stderr)
    if controller.dims is None:
        return 1

    if args.cursor:
        controller.set_cursor(*args.cursor)
    if args.mm:
        for axis, value in zip(Axis, args.mm):
            controller.coordinate_entry(axis, value)

    written = render_to_directory(controller, Path(args.out_dir))
    text = controller.coordinate_text
    print(f"Cursor {controller.cursor} = ({text[Axis.X]}, {text[Axis.Y]}, {text[Axis.Z]}) mm")
    if controller.download_url:
        print(f"Map: {controller.download_url}")
    for path in written:
        print(f"Wrote {path}")
    return 0


def run_info(args) -> int:
    status = 0
    frames = []
    for source in args.sources:
        try:
            frames.append(describe_volume(source))
        except LotusViewerError as exc:
            print(f"{source}: {exc}", file=sys.stderr)
            status = 1
    if frames:
        print(pd.concat(frames, ignore_index=True).to_string(index=False))
    return status


def run_gui(args) -> int:
    from .GUI.main_window import main as gui_main

    gui_main()
    return 0


def build_parser():
    import argparse

    settings = config.load_settings()
    parser = argparse.ArgumentParser(description="NIfTI slice viewer with MNI coordinates")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="Print dimensions, spacing and range of volumes")
    info.add_argument("sources", nargs="+", help="NIfTI files or URLs")
    info.set_defaults(func=run_info)

    render = sub.add_parser("render", help="Render axial/coronal/sagittal PNGs")
    render.add_argument("--background", help="Background NIfTI file or URL")
    group = render.add_mutually_exclusive_group()
    group.add_argument("--overlay", help="Overlay NIfTI file or URL")
    group.add_argument("--query", help="Fetch the overlay for this query from the backend")
    render.add_argument("--api-base", default=settings.api_base)
    render.add_argument("--voxel", type=float, default=settings.voxel)
    render.add_argument("--fwhm", type=float, default=settings.fwhm)
    render.add_argument("--kernel", default=settings.kernel)
    render.add_argument("--radius", type=float, default=settings.radius)
    render.add_argument("--cursor", type=int, nargs=3, metavar=("IX", "IY", "IZ"))
    render.add_argument("--mm", nargs=3, metavar=("X", "Y", "Z"), help="Cursor in mm")
    render.add_argument(
        "--threshold-mode", choices=[m.value for m in ThresholdMode], default=settings.threshold_mode
    )
    render.add_argument("--threshold", default=None, help="Cutoff value or percentile")
    render.add_argument("--opacity", type=float, default=settings.opacity)
    render.add_argument("--all-signs", action="store_true", help="Also show negative values")
    render.add_argument("--abs", action="store_true", help="Threshold on absolute values")
    render.add_argument(
        "--radiological", action="store_true", help="Do not mirror x (subject right on screen left)"
    )
    render.add_argument("--out-dir", default=".", help="Destination directory")
    render.set_defaults(func=run_render)

    gui = sub.add_parser("gui", help="Start the interactive viewer")
    gui.set_defaults(func=run_gui)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    if args.func is run_render and args.threshold is None:
        settings = config.load_settings()
        args.threshold = (
            settings.threshold_value
            if ThresholdMode.parse(args.threshold_mode) is ThresholdMode.VALUE
            else settings.percentile
        )
    if args.func is run_render and not (args.background or args.overlay or args.query):
        parser.error("render needs --background, --overlay or --query")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
