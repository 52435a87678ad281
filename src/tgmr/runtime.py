from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .cleanup import TempDirCleaner
from .media import probe as media_probe
from .media.downloader import MediaDownloader
from .media.types import DownloadOptions, MediaFormat, ProbeInfo
from .ratelimit import RateLimiter
from .settings import RelaySettings
from .urls import extract_urls, supported_platforms

Prober = Callable[[Path], Awaitable[ProbeInfo]]
ThumbnailFetcher = Callable[[str, Path], Awaitable[Path | None]]


@dataclass(frozen=True, slots=True)
class Admission:
    allowed: bool
    seconds_left: int = 0


class RelayRuntime:
    __slots__ = (
        "_rate_limiter",
        "_downloader",
        "_domains",
        "_max_file_size",
        "_download_timeout_s",
        "_cleaner",
        "_probe",
        "_fetch_thumbnail",
    )

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        downloader: MediaDownloader,
        supported_domains: Iterable[str],
        max_file_size: int,
        download_timeout_s: float,
        cleaner: TempDirCleaner | None = None,
        probe: Prober = media_probe.probe,
        fetch_thumbnail: ThumbnailFetcher = media_probe.fetch_thumbnail,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._downloader = downloader
        self._domains = tuple(supported_domains)
        self._max_file_size = max_file_size
        self._download_timeout_s = download_timeout_s
        self._cleaner = cleaner
        self._probe = probe
        self._fetch_thumbnail = fetch_thumbnail

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> RelayRuntime:
        return cls(
            rate_limiter=RateLimiter(settings.rate_limit, settings.cooldown),
            downloader=MediaDownloader(
                settings.tmp_dir,
                cookies_files=settings.cookies_files,
                default_cookies_file=settings.cookies_file,
            ),
            supported_domains=settings.supported_domains,
            max_file_size=settings.max_file_size,
            download_timeout_s=settings.download_timeout,
            cleaner=TempDirCleaner(settings.tmp_dir),
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def downloader(self) -> MediaDownloader:
        return self._downloader

    @property
    def cleaner(self) -> TempDirCleaner | None:
        return self._cleaner

    @property
    def supported_domains(self) -> tuple[str, ...]:
        return self._domains

    @property
    def max_file_size(self) -> int:
        return self._max_file_size

    def platforms_label(self) -> str:
        return supported_platforms(self._domains)

    def resolve_url(self, text: str) -> str | None:
        urls = extract_urls(text, self._domains)
        return urls[0] if urls else None

    def admit(self, identity: int) -> Admission:
        """Check the rate limit once and count the request when allowed."""
        limiter = self._rate_limiter
        if not limiter.can_make_request(identity):
            remaining = limiter.cooldown_remaining(identity)
            return Admission(allowed=False, seconds_left=max(1, round(remaining)))
        limiter.record_request(identity)
        return Admission(allowed=True)

    def download_options(self, media_format: MediaFormat) -> DownloadOptions:
        return DownloadOptions(
            max_file_size=self._max_file_size,
            timeout_s=self._download_timeout_s,
            format=media_format,
        )

    async def probe(self, path: Path) -> ProbeInfo:
        return await self._probe(path)

    async def fetch_thumbnail(self, url: str, dest: Path) -> Path | None:
        return await self._fetch_thumbnail(url, dest)
