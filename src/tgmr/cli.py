from __future__ import annotations

import shutil
from pathlib import Path

import anyio
import typer

from . import __version__
from .config import ConfigError
from .logging import get_logger, setup_logging
from .media.probe import FFMPEG, FFPROBE
from .media.ytdlp import GALLERY_DL, YTDLP
from .retry import with_retry
from .runtime import RelayRuntime
from .settings import RelaySettings, load_settings
from .telegram.bridge import TelegramBridgeConfig, run_main_loop
from .telegram.client import BotClient, TelegramAPIError

logger = get_logger(__name__)

REQUIRED_TOOLS = (YTDLP, FFPROBE)
OPTIONAL_TOOLS = {
    FFMPEG: "video thumbnails disabled",
    GALLERY_DL: "image posts cannot be downloaded",
}


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def check_tools() -> list[str]:
    """Raise for missing required tools; return warnings for optional ones."""
    missing = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
    if missing:
        raise ConfigError(f"Required tools not found on PATH: {', '.join(missing)}.")
    return [
        f"{tool} not found on PATH; {impact}"
        for tool, impact in OPTIONAL_TOOLS.items()
        if shutil.which(tool) is None
    ]


async def _serve(settings: RelaySettings, runtime: RelayRuntime) -> None:
    bot = BotClient(settings.bot_token)
    try:
        me = await with_retry(bot.get_me, name="get_me")
    except TelegramAPIError as exc:
        await bot.close()
        raise ConfigError(
            f"Invalid `BOT_TOKEN`; Telegram rejected it ({exc})."
        ) from exc
    except BaseException:
        await bot.close()
        raise
    logger.info("startup.bot", username=me.get("username"), bot_id=me.get("id"))
    if runtime.cleaner is not None:
        runtime.cleaner.init()
    await run_main_loop(TelegramBridgeConfig(bot=bot, runtime=runtime))


def _run(*, config: Path | None, debug: bool) -> None:
    setup_logging(debug=debug)
    try:
        settings = load_settings(config)
        for warning in check_tools():
            logger.warning("startup.tool_missing", detail=warning)
        runtime = RelayRuntime.from_settings(settings)
        anyio.run(_serve, settings, runtime)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
        raise typer.Exit(code=130)


def tools_cmd() -> None:
    """List the external tools and where they were found."""
    for tool in (*REQUIRED_TOOLS, *OPTIONAL_TOOLS):
        location = shutil.which(tool)
        typer.echo(f"{tool}: {location or 'missing'}")


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Relay media from supported links back into Telegram chats.",
)

app.command(name="tools")(tools_cmd)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="TOML file seeding settings (environment variables win).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log rate-limit decisions, retries, and tool invocations.",
    ),
) -> None:
    """tgmr CLI."""
    if ctx.invoked_subcommand is None:
        _run(config=config, debug=debug)
        raise typer.Exit()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
