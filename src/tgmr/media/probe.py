from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..logging import get_logger
from .process import ToolError, run_tool
from .types import ProbeInfo

logger = get_logger(__name__)

FFPROBE = "ffprobe"
FFMPEG = "ffmpeg"
PROBE_TIMEOUT_S = 60.0
THUMBNAIL_TIMEOUT_S = 60.0


def _to_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(str(value))
    except ValueError:
        try:
            return int(float(str(value)))
        except ValueError:
            return None


def _kbps(bit_rate: Any) -> str:
    value = _to_int(bit_rate)
    if not value:
        return ""
    return f"{int(value / 1000 + 0.5)}kbps"


def _khz(sample_rate: Any) -> str:
    value = _to_int(sample_rate)
    if not value:
        return ""
    khz = value / 1000
    text = f"{khz:.1f}" if khz % 1 else f"{int(khz)}"
    return f"{text}kHz"


def summarize_streams(data: dict[str, Any]) -> ProbeInfo:
    fmt = data.get("format") or {}
    container_rate = fmt.get("bit_rate")
    width: int | None = None
    height: int | None = None
    parts: list[str] = []
    for stream in data.get("streams") or []:
        if not isinstance(stream, dict):
            continue
        codec_type = stream.get("codec_type")
        codec = stream.get("codec_name") or "unknown"
        bitrate = _kbps(stream.get("bit_rate")) or _kbps(container_rate)
        if codec_type == "audio":
            pieces = [codec, _khz(stream.get("sample_rate")), bitrate]
        elif codec_type == "video":
            width = _to_int(stream.get("width"))
            height = _to_int(stream.get("height"))
            dims = f"{width}x{height}" if width and height else ""
            pieces = [codec, dims, bitrate]
        else:
            continue
        parts.append(" ".join(piece for piece in pieces if piece))
    return ProbeInfo(
        summary=", ".join(parts),
        width=width,
        height=height,
        size=_to_int(fmt.get("size")) or 0,
    )


async def probe(path: Path) -> ProbeInfo:
    output = await run_tool(
        [
            FFPROBE,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            path,
        ],
        timeout_s=PROBE_TIMEOUT_S,
    )
    data = json.loads(output.stdout or "{}")
    if not isinstance(data, dict):
        raise ValueError("ffprobe output is not a JSON object")
    return summarize_streams(data)


async def fetch_thumbnail(url: str, dest: Path) -> Path | None:
    """Download `url` and convert it to a JPEG at `dest`; None on any failure."""
    try:
        await run_tool([FFMPEG, "-y", "-i", url, dest], timeout_s=THUMBNAIL_TIMEOUT_S)
        size = dest.stat().st_size
    except (ToolError, OSError) as exc:
        logger.warning("thumbnail.failed", url=url, error=str(exc))
        return None
    if size == 0:
        logger.warning("thumbnail.empty", url=url)
        return None
    logger.info("thumbnail.fetched", url=url, size=size)
    return dest
