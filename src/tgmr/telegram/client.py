from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import anyio
import httpx

from ..logging import get_logger
from .types import TelegramIncomingMessage, parse_incoming_update

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
REQUEST_TIMEOUT_S = 120.0
POLL_TIMEOUT_S = 50
POLL_ERROR_DELAY_S = 3.0
MEDIA_GROUP_LIMIT = 10


class TelegramError(Exception):
    pass


class TelegramAPIError(TelegramError):
    """The Bot API answered with `ok: false`."""

    def __init__(
        self,
        method: str,
        error_code: int,
        description: str,
        *,
        retry_after: float | None = None,
    ) -> None:
        self.method = method
        self.error_code = error_code
        self.description = description
        self.retry_after = retry_after
        super().__init__(f"{error_code}: {description}")


class TelegramNetworkError(TelegramError, ConnectionError):
    """The request never produced a Bot API response."""

    def __init__(self, method: str, cause: BaseException) -> None:
        self.method = method
        self.cause = cause
        super().__init__(f"Network request for '{method}' failed!")


@dataclass(frozen=True, slots=True)
class InputMedia:
    type: Literal["photo", "video"]
    path: Path
    caption: str | None = None
    parse_mode: str | None = None


def _form_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _file_part(path: Path) -> tuple[str, bytes]:
    return path.name, await anyio.Path(path).read_bytes()


class BotClient:
    def __init__(
        self,
        token: str,
        *,
        base_url: str = TELEGRAM_API_BASE,
        timeout_s: float = REQUEST_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._me: dict[str, Any] | None = None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        files: dict[str, tuple[str, bytes]] | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        url = f"{self._base}/{method}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        kwargs: dict[str, Any] = {}
        if timeout_s is not None:
            kwargs["timeout"] = timeout_s
        try:
            if files:
                data = {k: _form_value(v) for k, v in params.items()}
                resp = await self._client.post(url, data=data, files=files, **kwargs)
            else:
                resp = await self._client.post(url, json=params, **kwargs)
        except httpx.TransportError as exc:
            logger.debug("telegram.network_error", method=method, error=repr(exc))
            raise TelegramNetworkError(method, exc) from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TelegramAPIError(
                method, resp.status_code, resp.text[:200] or resp.reason_phrase
            ) from exc
        if not isinstance(payload, dict) or not payload.get("ok"):
            payload = payload if isinstance(payload, dict) else {}
            parameters = payload.get("parameters") or {}
            raise TelegramAPIError(
                method,
                payload.get("error_code", resp.status_code),
                payload.get("description", resp.reason_phrase),
                retry_after=parameters.get("retry_after"),
            )
        return payload.get("result")

    async def get_me(self) -> dict[str, Any]:
        if self._me is None:
            self._me = await self._call("getMe")
        return self._me

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = POLL_TIMEOUT_S,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"timeout": timeout_s, "offset": offset}
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        # the long poll must finish before the HTTP read timeout
        return await self._call("getUpdates", params, timeout_s=timeout_s + 10)

    async def get_chat_member(self, chat_id: int, user_id: int) -> dict[str, Any]:
        return await self._call(
            "getChatMember", {"chat_id": chat_id, "user_id": user_id}
        )

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
    ) -> dict[str, Any]:
        return await self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "reply_to_message_id": reply_to_message_id,
                "parse_mode": parse_mode,
            },
        )

    async def send_chat_action(self, chat_id: int, action: str) -> bool:
        return bool(
            await self._call("sendChatAction", {"chat_id": chat_id, "action": action})
        )

    async def send_voice(
        self,
        chat_id: int,
        path: Path,
        *,
        caption: str | None = None,
        parse_mode: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, Any]:
        return await self._call(
            "sendVoice",
            {
                "chat_id": chat_id,
                "caption": caption,
                "parse_mode": parse_mode,
                "reply_to_message_id": reply_to_message_id,
            },
            files={"voice": await _file_part(path)},
        )

    async def send_video(
        self,
        chat_id: int,
        path: Path,
        *,
        caption: str | None = None,
        parse_mode: str | None = None,
        reply_to_message_id: int | None = None,
        thumbnail: Path | None = None,
        width: int | None = None,
        height: int | None = None,
        supports_streaming: bool = True,
    ) -> dict[str, Any]:
        files = {"video": await _file_part(path)}
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "caption": caption,
            "parse_mode": parse_mode,
            "reply_to_message_id": reply_to_message_id,
            "width": width,
            "height": height,
            "supports_streaming": supports_streaming,
        }
        if thumbnail is not None:
            files["thumbnail"] = await _file_part(thumbnail)
        return await self._call("sendVideo", params, files=files)

    async def send_photo(
        self,
        chat_id: int,
        path: Path,
        *,
        caption: str | None = None,
        parse_mode: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, Any]:
        return await self._call(
            "sendPhoto",
            {
                "chat_id": chat_id,
                "caption": caption,
                "parse_mode": parse_mode,
                "reply_to_message_id": reply_to_message_id,
            },
            files={"photo": await _file_part(path)},
        )

    async def send_media_group(
        self,
        chat_id: int,
        items: Sequence[InputMedia],
        *,
        reply_to_message_id: int | None = None,
    ) -> list[dict[str, Any]]:
        if not 2 <= len(items) <= MEDIA_GROUP_LIMIT:
            raise ValueError(
                f"media groups hold 2-{MEDIA_GROUP_LIMIT} items, got {len(items)}"
            )
        media: list[dict[str, Any]] = []
        files: dict[str, tuple[str, bytes]] = {}
        for index, item in enumerate(items):
            key = f"file{index}"
            files[key] = await _file_part(item.path)
            entry: dict[str, Any] = {"type": item.type, "media": f"attach://{key}"}
            if item.caption is not None:
                entry["caption"] = item.caption
            if item.parse_mode is not None:
                entry["parse_mode"] = item.parse_mode
            media.append(entry)
        return await self._call(
            "sendMediaGroup",
            {
                "chat_id": chat_id,
                "media": media,
                "reply_to_message_id": reply_to_message_id,
            },
            files=files,
        )


async def poll_incoming(
    bot: BotClient,
    *,
    offset: int | None = None,
    timeout_s: int = POLL_TIMEOUT_S,
) -> AsyncIterator[TelegramIncomingMessage]:
    while True:
        try:
            updates = await bot.get_updates(
                offset=offset, timeout_s=timeout_s, allowed_updates=["message"]
            )
        except TelegramAPIError as exc:
            delay = exc.retry_after or POLL_ERROR_DELAY_S
            logger.warning("poll.failed", error=str(exc), retry_in_s=delay)
            await anyio.sleep(delay)
            continue
        except TelegramNetworkError as exc:
            logger.warning("poll.failed", error=str(exc), retry_in_s=POLL_ERROR_DELAY_S)
            await anyio.sleep(POLL_ERROR_DELAY_S)
            continue
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                offset = update_id + 1
            msg = parse_incoming_update(update)
            if msg is not None:
                yield msg
