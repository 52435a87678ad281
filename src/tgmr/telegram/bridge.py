from __future__ import annotations

import re
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import anyio

from ..cleanup import CLEANUP_INTERVAL_S
from ..logging import bind_request_context, clear_context, get_logger
from ..media.types import DownloadResult, MediaFormat, MediaInfo
from ..retry import DEFAULT_RETRYABLE_ERRORS, RetryPolicy, error_message, with_retry
from ..runtime import RelayRuntime
from .chat_action import KEEPALIVE_INTERVAL_S, ChatAction, ChatActionKeepalive
from .client import (
    MEDIA_GROUP_LIMIT,
    BotClient,
    InputMedia,
    TelegramError,
    TelegramNetworkError,
    poll_incoming,
)
from .render import (
    GENERIC_ERROR_TEXT,
    MEDIA_INFO_FAILED_TEXT,
    NETWORK_ERROR_TEXT,
    NO_FILES_TEXT,
    PARSE_MODE,
    START_TEXT,
    download_failed_text,
    format_caption,
    help_text,
    rate_limited_text,
    size_limit_text,
)
from .types import TelegramIncomingMessage

logger = get_logger(__name__)

UPLOAD_RETRY = RetryPolicy(
    max_attempts=4,
    initial_delay=2.0,
    max_delay=10.0,
    retryable_errors=(
        *DEFAULT_RETRYABLE_ERRORS,
        # everything except an oversized upload
        re.compile(r"^(?!.*413: Request Entity Too Large).*$"),
    ),
    retryable_types=(TelegramNetworkError,),
)

UPLOAD_ACTIONS: dict[MediaFormat, ChatAction] = {
    "audio": "upload_voice",
    "video": "upload_video",
    "image": "upload_photo",
}
PHOTO_SUFFIXES = frozenset({".jpg", ".jpeg", ".png", ".webp"})
SEND_ALLOWED_STATUSES = frozenset({"creator", "administrator", "member"})

Sleep = Callable[[float], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class TelegramBridgeConfig:
    bot: BotClient
    runtime: RelayRuntime
    keepalive_interval_s: float = KEEPALIVE_INTERVAL_S
    cleanup_interval_s: float = CLEANUP_INTERVAL_S
    drop_pending_updates: bool = True
    sleep: Sleep = anyio.sleep


def _parse_slash_command(text: str) -> str | None:
    stripped = text.lstrip()
    if not stripped.startswith("/"):
        return None
    token = stripped.split(maxsplit=1)[0]
    command = token[1:].split("@", 1)[0]
    return command.lower() or None


async def _send_plain(
    bot: BotClient, msg: TelegramIncomingMessage, text: str
) -> None:
    await bot.send_message(msg.chat_id, text, reply_to_message_id=msg.message_id)


async def _reply_failure(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, exc: Exception
) -> None:
    text = (
        NETWORK_ERROR_TEXT
        if isinstance(exc, TelegramNetworkError)
        else GENERIC_ERROR_TEXT
    )
    try:
        await _send_plain(cfg.bot, msg, text)
    except Exception as reply_exc:
        logger.error("dispatch.reply_failed", error=error_message(reply_exc))


def _media_type(path: Path) -> str:
    return "photo" if path.suffix.lower() in PHOTO_SUFFIXES else "video"


async def _upload(
    cfg: TelegramBridgeConfig, name: str, send: Callable[[], Awaitable[object]]
) -> None:
    await with_retry(send, UPLOAD_RETRY, sleep=cfg.sleep, name=name)


async def _send_single(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    path: Path,
    caption: str | None,
) -> None:
    bot = cfg.bot
    if _media_type(path) == "photo":
        await _upload(
            cfg,
            "send_photo",
            lambda: bot.send_photo(
                msg.chat_id,
                path,
                caption=caption,
                parse_mode=PARSE_MODE,
                reply_to_message_id=msg.message_id,
            ),
        )
    else:
        await _upload(
            cfg,
            "send_video",
            lambda: bot.send_video(
                msg.chat_id,
                path,
                caption=caption,
                parse_mode=PARSE_MODE,
                reply_to_message_id=msg.message_id,
            ),
        )


async def _send_gallery(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    paths: Sequence[Path],
    info: MediaInfo,
) -> None:
    max_size = cfg.runtime.max_file_size
    files: list[Path] = []
    for path in paths:
        size = path.stat().st_size
        if size > max_size:
            logger.warning("dispatch.file_too_large", path=path.name, size=size)
            continue
        files.append(path)
    if not files:
        await _send_plain(cfg.bot, msg, NO_FILES_TEXT)
        return

    caption = format_caption(info.title)
    for start in range(0, len(files), MEDIA_GROUP_LIMIT):
        chunk = files[start : start + MEDIA_GROUP_LIMIT]
        chunk_caption = caption if start == 0 else None
        if len(chunk) == 1:
            await _send_single(cfg, msg, chunk[0], chunk_caption)
            continue
        items = [
            InputMedia(
                type="photo" if _media_type(path) == "photo" else "video",
                path=path,
                caption=chunk_caption if index == 0 else None,
                parse_mode=PARSE_MODE if index == 0 and chunk_caption else None,
            )
            for index, path in enumerate(chunk)
        ]
        await _upload(
            cfg,
            "send_media_group",
            lambda items=items: cfg.bot.send_media_group(
                msg.chat_id, items, reply_to_message_id=msg.message_id
            ),
        )


async def _send_media(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    path: Path,
    info: MediaInfo,
) -> None:
    runtime = cfg.runtime
    probed = await runtime.probe(path)
    size = probed.size or path.stat().st_size
    if size > runtime.max_file_size:
        logger.warning(
            "dispatch.file_too_large", size=size, max_file_size=runtime.max_file_size
        )
        await _send_plain(cfg.bot, msg, size_limit_text(size, runtime.max_file_size))
        return

    caption = format_caption(info.title, probed)
    bot = cfg.bot
    if info.format == "audio":
        await _upload(
            cfg,
            "send_voice",
            lambda: bot.send_voice(
                msg.chat_id,
                path,
                caption=caption,
                parse_mode=PARSE_MODE,
                reply_to_message_id=msg.message_id,
            ),
        )
        return

    thumbnail: Path | None = None
    if info.thumbnail:
        thumbnail = await runtime.fetch_thumbnail(
            info.thumbnail, path.with_name(f"{path.name}.thumb.jpg")
        )
    dims = probed.width and probed.height
    await _upload(
        cfg,
        "send_video",
        lambda: bot.send_video(
            msg.chat_id,
            path,
            caption=caption,
            parse_mode=PARSE_MODE,
            reply_to_message_id=msg.message_id,
            thumbnail=thumbnail,
            width=probed.width if dims else None,
            height=probed.height if dims else None,
        ),
    )


async def _relay(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    url: str,
    keepalive: ChatActionKeepalive,
) -> None:
    runtime = cfg.runtime
    downloader = runtime.downloader

    await keepalive.start("typing")
    logger.info("dispatch.info.fetch", url=url)
    info = await downloader.get_info(url)
    if info is None:
        keepalive.stop()
        logger.warning("dispatch.info.failed", url=url)
        await _send_plain(cfg.bot, msg, MEDIA_INFO_FAILED_TEXT)
        return

    await keepalive.start(UPLOAD_ACTIONS[info.format])
    logger.info("dispatch.download", url=url, format=info.format)
    result: DownloadResult = await downloader.download(
        url, runtime.download_options(info.format), info=info
    )
    keepalive.stop()

    if not result.success or not result.file_paths:
        error = result.error or "Unknown error"
        logger.error("dispatch.download.failed", url=url, error=error)
        await _send_plain(cfg.bot, msg, download_failed_text(error))
        return

    try:
        media_info = result.media_info or info
        if media_info.format == "image":
            await _send_gallery(cfg, msg, result.file_paths, media_info)
        else:
            await _send_media(cfg, msg, result.file_paths[0], media_info)
        logger.info(
            "dispatch.sent", format=media_info.format, files=len(result.file_paths)
        )
    finally:
        downloader.cleanup_result(result)


async def handle_message(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage
) -> None:
    text = msg.text
    if not text or "http" not in text:
        return
    bind_request_context(
        request_id=f"{msg.chat_id}:{msg.message_id}",
        chat_type=msg.chat_type,
        sender=msg.sender_label,
    )
    try:
        url = cfg.runtime.resolve_url(text)
        if url is None:
            return
        admission = cfg.runtime.admit(msg.identity)
        if not admission.allowed:
            await _send_plain(cfg.bot, msg, rate_limited_text(admission.seconds_left))
            return
        logger.info("dispatch.request", url=url)
        async with anyio.create_task_group() as tg:
            keepalive = ChatActionKeepalive(
                cfg.bot,
                msg.chat_id,
                tg,
                interval_s=cfg.keepalive_interval_s,
                sleep=cfg.sleep,
            )
            try:
                await _relay(cfg, msg, url, keepalive)
            except Exception as exc:
                logger.exception("dispatch.failed", url=url, error=error_message(exc))
                await _reply_failure(cfg, msg, exc)
            finally:
                keepalive.stop()
    except Exception as exc:
        logger.exception("dispatch.failed", error=error_message(exc))
        await _reply_failure(cfg, msg, exc)
    finally:
        clear_context()


async def _can_send_messages(cfg: TelegramBridgeConfig, chat_id: int) -> bool:
    try:
        me = await cfg.bot.get_me()
        member = await cfg.bot.get_chat_member(chat_id, me["id"])
    except (TelegramError, KeyError, TypeError) as exc:
        logger.error(
            "permissions.check_failed", chat_id=chat_id, error=error_message(exc)
        )
        return False
    if member.get("status") in SEND_ALLOWED_STATUSES:
        return True
    return member.get("can_send_messages") is True


async def route_message(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage
) -> None:
    try:
        command = _parse_slash_command(msg.text)
        if command == "start":
            await _send_plain(cfg.bot, msg, START_TEXT)
            return
        if command == "help":
            await _send_plain(cfg.bot, msg, help_text(cfg.runtime.platforms_label()))
            return
        if "http" not in msg.text:
            return
        if msg.is_group and not await _can_send_messages(cfg, msg.chat_id):
            logger.error("permissions.cannot_send", chat_id=msg.chat_id)
            return
        await handle_message(cfg, msg)
    except Exception as exc:
        logger.exception(
            "message.unhandled", chat_id=msg.chat_id, error=error_message(exc)
        )


async def _drain_backlog(cfg: TelegramBridgeConfig, offset: int | None) -> int | None:
    drained = 0
    while True:
        try:
            updates = await cfg.bot.get_updates(
                offset=offset, timeout_s=0, allowed_updates=["message"]
            )
        except TelegramError as exc:
            logger.info("startup.backlog.failed", error=error_message(exc))
            return offset
        if not updates:
            if drained:
                logger.info("startup.backlog.drained", count=drained)
            return offset
        offset = updates[-1]["update_id"] + 1
        drained += len(updates)


async def poll_updates(
    cfg: TelegramBridgeConfig,
) -> AsyncIterator[TelegramIncomingMessage]:
    offset: int | None = None
    if cfg.drop_pending_updates:
        offset = await _drain_backlog(cfg, offset)
    async for msg in poll_incoming(cfg.bot, offset=offset):
        yield msg


async def run_main_loop(
    cfg: TelegramBridgeConfig,
    poller: Callable[
        [TelegramBridgeConfig], AsyncIterator[TelegramIncomingMessage]
    ] = poll_updates,
) -> None:
    try:
        async with anyio.create_task_group() as maintenance:
            cleaner = cfg.runtime.cleaner
            if cleaner is not None:
                maintenance.start_soon(cleaner.run_periodic, cfg.cleanup_interval_s)
            logger.info(
                "startup.ready", domains=",".join(cfg.runtime.supported_domains)
            )
            async with anyio.create_task_group() as tg:
                async for msg in poller(cfg):
                    logger.debug(
                        "message.received",
                        chat_id=msg.chat_id,
                        message_id=msg.message_id,
                        text=msg.text[:100],
                    )
                    tg.start_soon(route_message, cfg, msg)
            maintenance.cancel_scope.cancel()
    finally:
        await cfg.bot.close()
