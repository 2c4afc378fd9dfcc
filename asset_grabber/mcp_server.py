"""MCP server exposing the asset grabber as a tool."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import GrabConfig
from .pipeline import grab

logger = logging.getLogger("asset_grabber.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="asset-grabber")


@mcp.tool()
async def grab_images(url: str, output_dir: str = ".", dynamic: str = "off") -> str:
    """Download every image referenced by a web page into a categorized ZIP archive."""
    result = await grab(url, GrabConfig(dynamic=dynamic))
    destination = Path(output_dir).expanduser().resolve() / result.filename
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(result.archive)

    counts = Counter(entry.folder.value for entry in result.entries)
    breakdown = ", ".join(f"{folder}: {count}" for folder, count in sorted(counts.items()))
    return f"Saved {len(result.entries)} image(s) to {destination} ({breakdown})"


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
