import os
import time
from pathlib import Path

from tgmr.cleanup import TempDirCleaner


def _age(path: Path, seconds: float) -> None:
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


def test_init_creates_and_empties_directory(tmp_path: Path) -> None:
    tmp_dir = tmp_path / "tmp"
    cleaner = TempDirCleaner(tmp_dir)
    cleaner.init()
    assert tmp_dir.is_dir()

    (tmp_dir / "left.mp4").write_bytes(b"x")
    (tmp_dir / "work").mkdir()
    (tmp_dir / "work" / "a.jpg").write_bytes(b"x")

    cleaner.init()

    assert tmp_dir.is_dir()
    assert list(tmp_dir.iterdir()) == []


def test_clean_old_files_only_removes_stale_entries(tmp_path: Path) -> None:
    cleaner = TempDirCleaner(tmp_path, max_age_s=3600)
    old_file = tmp_path / "old.mp4"
    old_file.write_bytes(b"x")
    _age(old_file, 7200)
    old_dir = tmp_path / "olddir"
    old_dir.mkdir()
    (old_dir / "a.jpg").write_bytes(b"x")
    _age(old_dir, 7200)
    fresh = tmp_path / "fresh.mp4"
    fresh.write_bytes(b"x")

    removed = cleaner.clean_old_files()

    assert removed == 2
    assert sorted(path.name for path in tmp_path.iterdir()) == ["fresh.mp4"]


def test_clean_old_files_uses_injected_clock(tmp_path: Path) -> None:
    (tmp_path / "a.mp4").write_bytes(b"x")
    cleaner = TempDirCleaner(tmp_path, max_age_s=60, clock=lambda: time.time() + 120)

    assert cleaner.clean_old_files() == 1


def test_clean_old_files_missing_directory(tmp_path: Path) -> None:
    assert TempDirCleaner(tmp_path / "missing").clean_old_files() == 0
