from tgmr.media.probe import summarize_streams
from tgmr.media.types import ProbeInfo


def test_summarize_video_and_audio_streams() -> None:
    data = {
        "streams": [
            {
                "codec_type": "video",
                "codec_name": "h264",
                "width": 1280,
                "height": 720,
                "bit_rate": "1499500",
            },
            {
                "codec_type": "audio",
                "codec_name": "aac",
                "sample_rate": "44100",
                "bit_rate": "128000",
            },
            {"codec_type": "data", "codec_name": "bin_data"},
        ],
        "format": {"size": "5242880", "bit_rate": "1700000"},
    }

    info = summarize_streams(data)

    assert info.summary == "h264 1280x720 1500kbps, aac 44.1kHz 128kbps"
    assert (info.width, info.height) == (1280, 720)
    assert info.size == 5242880
    assert info.size_mb == "5.0"


def test_stream_bitrate_falls_back_to_container() -> None:
    data = {
        "streams": [{"codec_type": "audio", "codec_name": "opus", "sample_rate": "48000"}],
        "format": {"bit_rate": "96400"},
    }

    assert summarize_streams(data).summary == "opus 48kHz 96kbps"


def test_video_without_dimensions_or_bitrate() -> None:
    info = summarize_streams({"streams": [{"codec_type": "video", "codec_name": "vp9"}]})

    assert info.summary == "vp9"
    assert info.width is None
    assert info.size == 0
    assert info.size_mb == "0"


def test_empty_probe() -> None:
    assert summarize_streams({}) == ProbeInfo(summary="")
