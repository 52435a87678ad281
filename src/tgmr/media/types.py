from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

MediaFormat = Literal["audio", "video", "image"]


@dataclass(frozen=True, slots=True)
class FormatInfo:
    format_id: str
    ext: str | None = None
    vcodec: str | None = None
    acodec: str | None = None
    filesize: int | None = None

    @property
    def has_video(self) -> bool:
        return bool(self.vcodec) and self.vcodec not in {"none", "null"}


@dataclass(frozen=True, slots=True)
class MediaInfo:
    url: str
    title: str
    format: MediaFormat
    duration: float | None = None
    thumbnail: str | None = None
    formats: tuple[FormatInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class DownloadOptions:
    max_file_size: int
    timeout_s: float
    format: MediaFormat


@dataclass(frozen=True, slots=True)
class DownloadResult:
    success: bool
    file_paths: tuple[Path, ...] = ()
    error: str | None = None
    media_info: MediaInfo | None = None
    workdir: Path | None = None

    @property
    def file_path(self) -> Path | None:
        return self.file_paths[0] if self.file_paths else None


@dataclass(frozen=True, slots=True)
class ProbeInfo:
    summary: str
    width: int | None = None
    height: int | None = None
    size: int = 0

    @property
    def size_mb(self) -> str:
        if not self.size:
            return "0"
        return f"{self.size / (1024 * 1024):.1f}"
