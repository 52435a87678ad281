import json
from pathlib import Path

import httpx
import pytest

from tgmr.telegram.client import (
    BotClient,
    InputMedia,
    TelegramAPIError,
    TelegramNetworkError,
)


def _client(handler) -> BotClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BotClient("123:abc", http_client=http)


@pytest.mark.anyio
async def test_send_message_posts_json_without_nulls() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 3}})

    bot = _client(handler)
    result = await bot.send_message(1, "hi", reply_to_message_id=9)

    assert result == {"message_id": 3}
    assert seen[0].url.path == "/bot123:abc/sendMessage"
    assert json.loads(seen[0].content) == {
        "chat_id": 1,
        "text": "hi",
        "reply_to_message_id": 9,
    }


@pytest.mark.anyio
async def test_api_error_carries_code_and_description() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            413,
            json={
                "ok": False,
                "error_code": 413,
                "description": "Request Entity Too Large",
            },
        )

    bot = _client(handler)
    with pytest.raises(TelegramAPIError) as excinfo:
        await bot.send_chat_action(1, "typing")

    assert str(excinfo.value) == "413: Request Entity Too Large"
    assert excinfo.value.error_code == 413
    assert excinfo.value.method == "sendChatAction"


@pytest.mark.anyio
async def test_transport_failure_is_a_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    bot = _client(handler)
    with pytest.raises(TelegramNetworkError) as excinfo:
        await bot.send_message(1, "hi")

    assert str(excinfo.value) == "Network request for 'sendMessage' failed!"
    assert isinstance(excinfo.value, ConnectionError)


@pytest.mark.anyio
async def test_send_video_uploads_multipart(tmp_path: Path) -> None:
    video = tmp_path / "clip.mp4"
    video.write_bytes(b"video-bytes")
    thumb = tmp_path / "clip.mp4.thumb.jpg"
    thumb.write_bytes(b"jpeg-bytes")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    bot = _client(handler)
    await bot.send_video(
        1,
        video,
        caption="`c`",
        parse_mode="MarkdownV2",
        thumbnail=thumb,
        width=640,
        height=360,
    )

    request = seen[0]
    body = request.read()
    assert request.url.path.endswith("/sendVideo")
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'name="video"; filename="clip.mp4"' in body
    assert b'name="thumbnail"; filename="clip.mp4.thumb.jpg"' in body
    assert b"video-bytes" in body
    assert b'name="width"\r\n\r\n640' in body
    assert b'name="supports_streaming"\r\n\r\ntrue' in body


@pytest.mark.anyio
async def test_send_media_group_attaches_files(tmp_path: Path) -> None:
    paths = []
    for name in ("a.jpg", "b.mp4"):
        path = tmp_path / name
        path.write_bytes(name.encode())
        paths.append(path)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True, "result": []})

    bot = _client(handler)
    await bot.send_media_group(
        1,
        [
            InputMedia(
                type="photo", path=paths[0], caption="`x`", parse_mode="MarkdownV2"
            ),
            InputMedia(type="video", path=paths[1]),
        ],
    )

    body = seen[0].read()
    assert b'"media": "attach://file0"' in body
    assert b'"media": "attach://file1"' in body
    assert b'name="file1"; filename="b.mp4"' in body


@pytest.mark.anyio
async def test_send_media_group_rejects_bad_sizes(tmp_path: Path) -> None:
    bot = BotClient("t")
    with pytest.raises(ValueError):
        await bot.send_media_group(1, [InputMedia(type="photo", path=tmp_path / "a")])
    await bot.close()


@pytest.mark.anyio
async def test_get_me_is_cached() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"ok": True, "result": {"id": 42}})

    bot = _client(handler)
    assert await bot.get_me() == {"id": 42}
    assert await bot.get_me() == {"id": 42}
    assert calls == 1
