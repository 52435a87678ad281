"""Argument builders and output parsers for yt-dlp and gallery-dl."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from .types import FormatInfo, MediaFormat, MediaInfo

YTDLP = "yt-dlp"
GALLERY_DL = "gallery-dl"

OUTPUT_TEMPLATE = "%(title).120B-%(id)s.%(ext)s"
AUDIO_FORMAT = "bestaudio[acodec=opus]/bestaudio"
VIDEO_FORMAT = "best"

# yt-dlp prints these when a URL has no downloadable video/audio (image posts)
NO_MEDIA_MARKERS = (
    "No video formats found",
    "There's no video in this",
    "Unsupported URL",
    "No video could be found",
)
MAX_FILESIZE_MARKER = "larger than max-filesize"

_NA_VALUE = re.compile(r"(:\s*)NA(\s*[,}])")
_MERGER = re.compile(r'\[Merger\] Merging formats into "(.*?)"')
_EXTRACT_AUDIO = re.compile(r"\[ExtractAudio\] Destination: (.*)")
_DESTINATION = re.compile(r"\[download\] Destination: (.*)")
_ALREADY = re.compile(r"\[download\] (.*?) has already been downloaded")


def cookie_args(cookies_file: Path | None) -> list[str]:
    if cookies_file is None:
        return []
    return ["--cookies", str(cookies_file)]


def info_args(url: str, *, cookies_file: Path | None = None) -> list[str]:
    return [
        YTDLP,
        "--dump-single-json",
        "--no-download",
        "--no-playlist",
        "--no-warnings",
        *cookie_args(cookies_file),
        url,
    ]


def select_format(media_format: MediaFormat) -> str:
    if media_format == "audio":
        return AUDIO_FORMAT
    return VIDEO_FORMAT


def download_args(
    url: str,
    *,
    workdir: Path,
    media_format: MediaFormat,
    max_file_size: int,
    cookies_file: Path | None = None,
) -> list[str]:
    return [
        YTDLP,
        "--format",
        select_format(media_format),
        "--no-playlist",
        "--output",
        str(workdir / OUTPUT_TEMPLATE),
        "--max-filesize",
        str(max_file_size),
        "--no-write-info-json",
        "--no-write-description",
        "--no-write-thumbnail",
        "--no-progress",
        *cookie_args(cookies_file),
        url,
    ]


def gallery_args(
    url: str, *, workdir: Path, cookies_file: Path | None = None
) -> list[str]:
    return [GALLERY_DL, "-D", str(workdir), *cookie_args(cookies_file), url]


def _load_object(text: str) -> dict[str, Any]:
    first = text.splitlines()[0].strip()
    if first.startswith("{") and first.endswith("}"):
        data = json.loads(first)
    else:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object in yt-dlp output")
        data = json.loads(text[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("yt-dlp output is not a JSON object")
    return data


def parse_info_json(stdout: str) -> dict[str, Any]:
    text = stdout.strip()
    if not text:
        raise ValueError("empty yt-dlp output")
    try:
        return _load_object(text)
    except json.JSONDecodeError:
        # print templates render missing fields as a bare NA
        return _load_object(_NA_VALUE.sub(r"\1null\2", text))


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_formats(raw: Any) -> tuple[FormatInfo, ...]:
    if not isinstance(raw, list):
        return ()
    formats: list[FormatInfo] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        formats.append(
            FormatInfo(
                format_id=str(item.get("format_id") or ""),
                ext=_as_str(item.get("ext")),
                vcodec=_as_str(item.get("vcodec")),
                acodec=_as_str(item.get("acodec")),
                filesize=_as_int(item.get("filesize"))
                or _as_int(item.get("filesize_approx")),
            )
        )
    return tuple(formats)


def media_info_from_json(url: str, data: dict[str, Any]) -> MediaInfo:
    formats = parse_formats(data.get("formats"))
    if formats:
        has_video = any(fmt.has_video for fmt in formats)
    else:
        # single-format extractors report codecs at the top level
        has_video = FormatInfo(format_id="", vcodec=_as_str(data.get("vcodec"))).has_video
    duration = data.get("duration")
    return MediaInfo(
        url=url,
        title=_as_str(data.get("title")) or url,
        format="video" if has_video else "audio",
        duration=float(duration) if isinstance(duration, (int, float)) else None,
        thumbnail=_as_str(data.get("thumbnail")),
        formats=formats,
    )


def reports_no_media(message: str) -> bool:
    return any(marker in message for marker in NO_MEDIA_MARKERS)


def extract_file_path(output: str) -> str | None:
    """Find the final output file in yt-dlp's stdout, newest line first."""
    for line in reversed(output.splitlines()):
        for pattern in (_MERGER, _EXTRACT_AUDIO, _DESTINATION, _ALREADY):
            match = pattern.search(line)
            if match:
                return match.group(1).strip()
    return None


def parse_gallery_output(output: str) -> list[str]:
    paths: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("# "):
            line = line[2:].strip()
        if not line or line.startswith("["):
            continue
        paths.append(line)
    return paths
