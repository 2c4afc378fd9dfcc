"""Command-line entry point for the asset grabber."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from .config import DYNAMIC_MODES, FETCH_TIMEOUT, GrabConfig
from .errors import GrabError
from .pipeline import grab, stream

logger = logging.getLogger("asset_grabber.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("grab", *argv)


def _add_grab_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", help="Page whose images should be downloaded")
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where the ZIP archive should be written",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Download one image at a time and log progress after each",
    )
    parser.add_argument(
        "--dynamic",
        choices=DYNAMIC_MODES,
        default="off",
        help="Render the page in a headless browser: never, when few images were found, or always",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=FETCH_TIMEOUT,
        help="Per-image request timeout in seconds",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Cap on concurrent downloads in batch mode (default: one per image)",
    )
    parser.add_argument(
        "--no-favicon-probe",
        action="store_true",
        help="Do not probe conventional favicon paths such as /favicon.ico",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_serve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download every image referenced by a web page into a categorized ZIP archive.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    grab_parser = subparsers.add_parser("grab", help="Download the images of one page")
    _add_grab_arguments(grab_parser)

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP download endpoints")
    _add_serve_arguments(serve_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> GrabConfig:
    return GrabConfig(
        fetch_timeout=args.timeout,
        dynamic=args.dynamic,
        probe_favicons=not args.no_favicon_probe,
        max_workers=args.workers,
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


async def _stream_archive(url: str, config: GrabConfig) -> Tuple[bytes, str]:
    async for event in stream(url, config):
        if event.error is not None:
            raise GrabError(event.error)
        if event.archive is not None and event.filename:
            return event.archive, event.filename
        suffix = f" ({event.current_item})" if event.current_item else ""
        logger.info("[%3d%%] %s%s", event.percentage, event.stage, suffix)
    raise RuntimeError("Progress stream ended without a terminal event")


def _run_grab(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    config = build_config(args)

    overall_start = time.perf_counter()
    count: Optional[int] = None
    try:
        if args.stream:
            archive, filename = asyncio.run(_stream_archive(args.url, config))
        else:
            result = asyncio.run(grab(args.url, config))
            archive, filename = result.archive, result.filename
            count = len(result.entries)
            for failure in result.failures:
                logger.debug("Skipped %s: %s", failure.asset.absolute_url[:120], failure.error)
    except GrabError as exc:
        logger.error("%s", exc.message)
        return 1

    output_dir = Path(args.output).resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / filename
    output_path.write_bytes(archive)
    total_elapsed = time.perf_counter() - overall_start
    if count is None:
        logger.info("Saved archive to %s in %.2fs", output_path, total_elapsed)
    else:
        logger.info("Saved %d image(s) to %s in %.2fs", count, output_path, total_elapsed)
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    _configure_logging(args.verbose)
    uvicorn.run(
        "asset_grabber.server:app",
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "grab":
        status = _run_grab(args)
    else:
        status = _run_serve(args)
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
