import json
from pathlib import Path

import pytest

from tgmr.media import ytdlp


def test_extract_file_path_prefers_merger_line() -> None:
    output = "\n".join(
        [
            "[youtube] abc: Downloading webpage",
            "[download] Destination: /tmp/w/clip-abc.f137.mp4",
            "[download] 100% of 10.00MiB",
            "[download] Destination: /tmp/w/clip-abc.f140.m4a",
            '[Merger] Merging formats into "/tmp/w/clip-abc.mp4"',
            "Deleting original file /tmp/w/clip-abc.f137.mp4",
        ]
    )

    assert ytdlp.extract_file_path(output) == "/tmp/w/clip-abc.mp4"


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("[ExtractAudio] Destination: /tmp/w/song.opus", "/tmp/w/song.opus"),
        ("[download] Destination: /tmp/w/song.webm", "/tmp/w/song.webm"),
        (
            "[download] /tmp/w/song.webm has already been downloaded",
            "/tmp/w/song.webm",
        ),
    ],
)
def test_extract_file_path_variants(line: str, expected: str) -> None:
    assert ytdlp.extract_file_path(f"[info] header\n{line}\n") == expected


def test_extract_file_path_none() -> None:
    assert ytdlp.extract_file_path("[info] nothing here\n") is None


def test_parse_gallery_output() -> None:
    output = "/tmp/w/a.jpg\n# /tmp/w/b.png\n[twitter][info] skipped\n\n"

    assert ytdlp.parse_gallery_output(output) == ["/tmp/w/a.jpg", "/tmp/w/b.png"]


def test_media_info_from_json_detects_video() -> None:
    data = {
        "title": "A clip",
        "duration": 12.5,
        "thumbnail": "https://i.example/t.jpg",
        "formats": [
            {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a"},
            {"format_id": "22", "ext": "mp4", "vcodec": "avc1", "acodec": "mp4a"},
        ],
    }

    info = ytdlp.media_info_from_json("https://youtu.be/x", data)

    assert info.format == "video"
    assert info.title == "A clip"
    assert info.duration == 12.5
    assert info.thumbnail == "https://i.example/t.jpg"
    assert [fmt.format_id for fmt in info.formats] == ["140", "22"]


def test_media_info_from_json_audio_only_and_title_fallback() -> None:
    data = {"formats": [{"format_id": "251", "vcodec": "none", "acodec": "opus"}]}

    info = ytdlp.media_info_from_json("https://soundcloud.com/a/b", data)

    assert info.format == "audio"
    assert info.title == "https://soundcloud.com/a/b"


def test_media_info_without_formats_uses_top_level_codec() -> None:
    info = ytdlp.media_info_from_json("u", {"title": "t", "vcodec": "h264"})

    assert info.format == "video"


def test_parse_info_json_skips_leading_noise_and_na() -> None:
    payload = json.dumps({"title": "x", "formats": []})

    assert ytdlp.parse_info_json(payload)["title"] == "x"
    assert ytdlp.parse_info_json(f"WARNING: slow\n{payload}\n")["title"] == "x"
    assert ytdlp.parse_info_json('{"title": "t", "filesize": NA}') == {
        "title": "t",
        "filesize": None,
    }
    with pytest.raises(ValueError):
        ytdlp.parse_info_json("   ")


def test_reports_no_media() -> None:
    assert ytdlp.reports_no_media("ERROR: [twitter] 1: No video could be found in this tweet")
    assert not ytdlp.reports_no_media("ERROR: HTTP Error 403: Forbidden")


def test_download_args_include_limits_and_cookies(tmp_path: Path) -> None:
    args = ytdlp.download_args(
        "https://youtu.be/x",
        workdir=tmp_path,
        media_format="audio",
        max_file_size=1000,
        cookies_file=Path("/c/yt.txt"),
    )

    assert args[0] == "yt-dlp"
    assert args[args.index("--format") + 1] == ytdlp.AUDIO_FORMAT
    assert args[args.index("--max-filesize") + 1] == "1000"
    assert args[args.index("--output") + 1].startswith(str(tmp_path))
    assert args[args.index("--cookies") + 1] == "/c/yt.txt"
    assert args[-1] == "https://youtu.be/x"


def test_info_args_without_cookies() -> None:
    args = ytdlp.info_args("https://youtu.be/x")

    assert "--dump-single-json" in args
    assert "--cookies" not in args
