"""Reply texts and MarkdownV2 captions."""

from __future__ import annotations

import re

from ..media.types import ProbeInfo

PARSE_MODE = "MarkdownV2"

_MARKDOWN_V2_SPECIAL = re.compile(r"([\\_*\[\]()~`>#+\-=|{}.!])")

START_TEXT = (
    "Hello! I can help you download media from various platforms. "
    "Just send me a link, and I'll reply with the media."
)
MEDIA_INFO_FAILED_TEXT = "Failed to get media information after several attempts"
NO_FILES_TEXT = "Sorry, none of the downloaded files fit within the size limit."
GENERIC_ERROR_TEXT = "Sorry, something went wrong while processing your request."
NETWORK_ERROR_TEXT = "Sorry, there was a network error. Please try again in a moment."


def escape_markdown_v2(text: str) -> str:
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def format_megabytes(size: int) -> str:
    value = size / (1024 * 1024)
    text = f"{value:.1f}"
    return text[:-2] if text.endswith(".0") else text


def help_text(platforms: str) -> str:
    return (
        f"Send me a link from {platforms}, and I'll download and send you the media.\n\n"
        "For audio-only content, I'll send it as a voice message. "
        "For videos, I'll send them as video files. "
        "For images, I'll send them in the highest quality available."
    )


def rate_limited_text(seconds_left: int) -> str:
    return f"Rate limit exceeded. Please wait {seconds_left} seconds before trying again."


def download_failed_text(error: str) -> str:
    return f"Failed to process media after several attempts: {error}"


def size_limit_text(size: int, max_file_size: int) -> str:
    return (
        f"Sorry, this media file ({format_megabytes(size)}MB) exceeds Telegram's "
        f"size limit ({format_megabytes(max_file_size)}MB). "
        "Try a shorter clip or lower quality version."
    )


def format_caption(title: str, info: ProbeInfo | None = None) -> str:
    """Two code lines: the title, then the stream summary and file size."""
    lines = [f"`{escape_markdown_v2(title)}`"]
    if info is not None:
        details = info.summary
        if info.size:
            details = f"{details}, {info.size_mb}MB" if details else f"{info.size_mb}MB"
        if details:
            lines.append(f"`{escape_markdown_v2(details)}`")
    return "\n".join(lines)
