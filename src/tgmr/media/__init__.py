from .downloader import MediaDownloader
from .process import ToolError, ToolNotFoundError, ToolTimeoutError, run_tool
from .types import DownloadOptions, DownloadResult, FormatInfo, MediaInfo, ProbeInfo

__all__ = [
    "DownloadOptions",
    "DownloadResult",
    "FormatInfo",
    "MediaDownloader",
    "MediaInfo",
    "ProbeInfo",
    "ToolError",
    "ToolNotFoundError",
    "ToolTimeoutError",
    "run_tool",
]
