from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Literal

import anyio
from anyio.abc import TaskGroup, TaskStatus

from ..logging import get_logger
from ..retry import RetryPolicy, error_message, with_retry
from .client import BotClient, TelegramNetworkError

logger = get_logger(__name__)

ChatAction = Literal[
    "typing",
    "upload_photo",
    "upload_video",
    "upload_voice",
    "upload_document",
]

# Telegram shows an action for about five seconds
KEEPALIVE_INTERVAL_S = 4.0

CHAT_ACTION_RETRY = RetryPolicy(
    max_attempts=5,
    initial_delay=0.5,
    max_delay=5.0,
    retryable_types=(TelegramNetworkError, TimeoutError, ConnectionError),
)


class ChatActionKeepalive:
    """Keeps a chat action visible until `stop` is called.

    The refresh loop runs in `task_group` under its own cancel scope, so
    stopping it never cancels the caller.
    """

    def __init__(
        self,
        bot: BotClient,
        chat_id: int,
        task_group: TaskGroup,
        *,
        interval_s: float = KEEPALIVE_INTERVAL_S,
        policy: RetryPolicy = CHAT_ACTION_RETRY,
        sleep: Callable[[float], Awaitable[object]] = anyio.sleep,
    ) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._task_group = task_group
        self._interval_s = interval_s
        self._policy = policy
        self._sleep = sleep
        self._scope: anyio.CancelScope | None = None
        self.action: ChatAction | None = None

    @property
    def active(self) -> bool:
        return self._scope is not None

    async def _send(self, action: ChatAction) -> None:
        await with_retry(
            lambda: self._bot.send_chat_action(self._chat_id, action),
            self._policy,
            sleep=self._sleep,
            name="send_chat_action",
        )

    async def start(self, action: ChatAction) -> None:
        self.stop()
        try:
            await self._send(action)
        except Exception as exc:
            logger.error(
                "chat_action.start_failed",
                chat_id=self._chat_id,
                action=action,
                error=error_message(exc),
            )
            return
        self.action = action
        self._scope = await self._task_group.start(self._refresh, action)

    def stop(self) -> None:
        if self._scope is not None:
            self._scope.cancel()
            self._scope = None
        self.action = None

    async def _refresh(
        self,
        action: ChatAction,
        *,
        task_status: TaskStatus[anyio.CancelScope] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        with anyio.CancelScope() as scope:
            task_status.started(scope)
            while True:
                await anyio.sleep(self._interval_s)
                try:
                    await self._send(action)
                except TelegramNetworkError as exc:
                    logger.debug(
                        "chat_action.refresh_failed",
                        chat_id=self._chat_id,
                        error=error_message(exc),
                    )
                except Exception as exc:
                    logger.error(
                        "chat_action.refresh_failed",
                        chat_id=self._chat_id,
                        action=action,
                        error=error_message(exc),
                    )
