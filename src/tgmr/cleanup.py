from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from pathlib import Path

import anyio

from .logging import get_logger

logger = get_logger(__name__)

MAX_FILE_AGE_S = 24 * 60 * 60
CLEANUP_INTERVAL_S = 60 * 60


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


class TempDirCleaner:
    def __init__(
        self,
        tmp_dir: Path,
        *,
        max_age_s: float = MAX_FILE_AGE_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tmp_dir = tmp_dir
        self.max_age_s = max_age_s
        self._clock = clock

    def init(self) -> None:
        """Create the temp directory and empty it, keeping the directory itself."""
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        removed = 0
        for child in self.tmp_dir.iterdir():
            try:
                _remove(child)
                removed += 1
            except OSError as exc:
                logger.error("tmp.init.remove_failed", path=str(child), error=str(exc))
        logger.info("tmp.init", path=str(self.tmp_dir), removed=removed)

    def clean_old_files(self) -> int:
        now = self._clock()
        removed = 0
        try:
            children = list(self.tmp_dir.iterdir())
        except FileNotFoundError:
            return 0
        for child in children:
            try:
                age = now - child.stat().st_mtime
                if age <= self.max_age_s:
                    continue
                _remove(child)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error("tmp.cleanup.failed", path=str(child), error=str(exc))
                continue
            removed += 1
            logger.info("tmp.cleanup.removed", path=child.name)
        return removed

    async def run_periodic(self, interval_s: float = CLEANUP_INTERVAL_S) -> None:
        while True:
            await anyio.sleep(interval_s)
            self.clean_old_files()
