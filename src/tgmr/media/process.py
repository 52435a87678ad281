from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import anyio

from ..logging import get_logger

logger = get_logger(__name__)

_STDERR_TAIL_CHARS = 2000


class ToolError(Exception):
    def __init__(
        self,
        tool: str,
        message: str,
        *,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class ToolTimeoutError(ToolError, TimeoutError):
    pass


class ToolNotFoundError(ToolError):
    pass


@dataclass(frozen=True, slots=True)
class ToolOutput:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


def _tail(text: str) -> str:
    text = text.strip()
    if len(text) <= _STDERR_TAIL_CHARS:
        return text
    return "…" + text[-_STDERR_TAIL_CHARS:]


async def run_tool(
    args: Sequence[str | Path],
    *,
    timeout_s: float | None = None,
    cwd: Path | None = None,
) -> ToolOutput:
    argv = [str(arg) for arg in args]
    tool = Path(argv[0]).name
    logger.debug("tool.run", tool=tool, args=argv[1:], timeout_s=timeout_s)
    try:
        with anyio.fail_after(timeout_s):
            completed = await anyio.run_process(argv, check=False, cwd=cwd)
    except TimeoutError as exc:
        raise ToolTimeoutError(tool, f"exceeded the {timeout_s}s time limit") from exc
    except FileNotFoundError as exc:
        raise ToolNotFoundError(tool, "not found on PATH") from exc

    stdout = completed.stdout.decode("utf-8", errors="replace")
    stderr = completed.stderr.decode("utf-8", errors="replace")
    if completed.returncode != 0:
        tail = _tail(stderr) or f"exit status {completed.returncode}"
        raise ToolError(tool, tail, returncode=completed.returncode, stderr=stderr)
    if stderr.strip():
        logger.debug("tool.stderr", tool=tool, stderr=_tail(stderr))
    return ToolOutput(
        args=tuple(argv),
        returncode=completed.returncode,
        stdout=stdout,
        stderr=stderr,
    )
