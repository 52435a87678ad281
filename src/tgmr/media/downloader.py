from __future__ import annotations

import re
import shutil
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from uuid import uuid4

import anyio

from ..cookies import select_cookies_file, usable_cookies_file
from ..logging import get_logger
from ..retry import DEFAULT_RETRYABLE_ERRORS, RetryPolicy, error_message, with_retry
from . import ytdlp
from .process import ToolError, ToolNotFoundError, ToolOutput, ToolTimeoutError, run_tool
from .types import DownloadOptions, DownloadResult, MediaInfo

logger = get_logger(__name__)

ToolRunner = Callable[..., Awaitable[ToolOutput]]

INFO_TIMEOUT_S = 120.0

# network failures as yt-dlp and gallery-dl report them on stderr
TOOL_NETWORK_ERRORS: tuple[str | re.Pattern[str], ...] = (
    *DEFAULT_RETRYABLE_ERRORS,
    "timed out",
    "Connection reset",
    "Connection refused",
    "Temporary failure in name resolution",
    "Name or service not known",
    "Remote end closed connection",
    "IncompleteRead",
    re.compile(r"HTTP Error 5\d\d"),
)

METADATA_RETRY = RetryPolicy(
    max_attempts=5,
    initial_delay=2.0,
    max_delay=15.0,
    retryable_errors=TOOL_NETWORK_ERRORS,
    retryable_types=(ToolTimeoutError, ConnectionError),
)
DOWNLOAD_RETRY = RetryPolicy(
    max_attempts=3,
    initial_delay=3.0,
    max_delay=20.0,
    retryable_errors=TOOL_NETWORK_ERRORS,
    retryable_types=(ConnectionError,),
)


class MediaDownloader:
    def __init__(
        self,
        tmp_dir: Path,
        *,
        cookies_files: Mapping[str, Path] | None = None,
        default_cookies_file: Path | None = None,
        run: ToolRunner = run_tool,
        sleep: Callable[[float], Awaitable[object]] = anyio.sleep,
        metadata_retry: RetryPolicy = METADATA_RETRY,
        download_retry: RetryPolicy = DOWNLOAD_RETRY,
    ) -> None:
        self.tmp_dir = tmp_dir
        self._cookies_files = dict(cookies_files or {})
        self._default_cookies_file = default_cookies_file
        self._run = run
        self._sleep = sleep
        self._metadata_retry = metadata_retry
        self._download_retry = download_retry

    def cookies_for(self, url: str) -> Path | None:
        selected = select_cookies_file(
            url, self._cookies_files, default=self._default_cookies_file
        )
        return usable_cookies_file(selected)

    async def get_info(self, url: str) -> MediaInfo | None:
        cookies = self.cookies_for(url)

        async def fetch() -> ToolOutput:
            return await self._run(
                ytdlp.info_args(url, cookies_file=cookies), timeout_s=INFO_TIMEOUT_S
            )

        try:
            output = await with_retry(
                fetch, self._metadata_retry, sleep=self._sleep, name="yt-dlp.info"
            )
        except ToolNotFoundError as exc:
            logger.error("media.info.failed", url=url, error=str(exc))
            return None
        except ToolError as exc:
            if ytdlp.reports_no_media(exc.stderr or str(exc)):
                logger.info("media.info.no_video", url=url)
                return MediaInfo(url=url, title=url, format="image")
            logger.error("media.info.failed", url=url, error=error_message(exc))
            return None
        except Exception as exc:
            logger.error("media.info.failed", url=url, error=error_message(exc))
            return None

        try:
            data = ytdlp.parse_info_json(output.stdout)
        except ValueError as exc:
            logger.error("media.info.unparseable", url=url, error=str(exc))
            return None
        return ytdlp.media_info_from_json(url, data)

    def _new_workdir(self) -> Path:
        workdir = self.tmp_dir / uuid4().hex[:12]
        workdir.mkdir(parents=True, exist_ok=True)
        return workdir

    async def download(
        self,
        url: str,
        options: DownloadOptions,
        *,
        info: MediaInfo | None = None,
    ) -> DownloadResult:
        workdir = self._new_workdir()
        cookies = self.cookies_for(url)
        if options.format == "image":
            args = ytdlp.gallery_args(url, workdir=workdir, cookies_file=cookies)
        else:
            args = ytdlp.download_args(
                url,
                workdir=workdir,
                media_format=options.format,
                max_file_size=options.max_file_size,
                cookies_file=cookies,
            )
        logger.info("media.download.start", url=url, format=options.format)

        async def attempt() -> ToolOutput:
            return await self._run(args, timeout_s=options.timeout_s)

        try:
            output = await with_retry(
                attempt, self._download_retry, sleep=self._sleep, name=args[0]
            )
        except ToolError as exc:
            self.cleanup(workdir)
            return DownloadResult(success=False, error=error_message(exc))

        if options.format == "image":
            paths = self._resolve_paths(ytdlp.parse_gallery_output(output.stdout), workdir)
        elif ytdlp.MAX_FILESIZE_MARKER in output.stdout:
            self.cleanup(workdir)
            return DownloadResult(
                success=False, error="File exceeds the maximum allowed size"
            )
        else:
            found = ytdlp.extract_file_path(output.stdout)
            paths = self._resolve_paths([found] if found else [], workdir)

        if not paths:
            self.cleanup(workdir)
            return DownloadResult(
                success=False, error="Failed to extract downloaded file path"
            )

        if info is None:
            info = await self.get_info(url)
        if info is None:
            info = MediaInfo(url=url, title=paths[0].stem, format=options.format)
        logger.info("media.download.done", url=url, files=len(paths))
        return DownloadResult(
            success=True,
            file_paths=tuple(paths),
            media_info=info,
            workdir=workdir,
        )

    def _resolve_paths(self, raw: Sequence[str], workdir: Path) -> list[Path]:
        paths: list[Path] = []
        for item in raw:
            path = Path(item)
            if not path.is_absolute() and not path.exists():
                path = workdir / path
            if path.is_file():
                paths.append(path)
            else:
                logger.warning("media.download.missing_file", path=str(path))
        return paths

    def cleanup(self, *paths: Path | None) -> None:
        for path in paths:
            if path is None:
                continue
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("cleanup.failed", path=str(path), error=str(exc))

    def cleanup_result(self, result: DownloadResult) -> None:
        self.cleanup(*result.file_paths, result.workdir)
