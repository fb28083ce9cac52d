"""Thin async wrapper around external command execution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one external command."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


CommandRunner = Callable[..., Awaitable[CommandResult]]


async def run_command(*args: str) -> CommandResult:
    """Run a command without a shell and capture stdout/stderr.

    Raises ``OSError`` (usually ``FileNotFoundError``) if the executable
    cannot be launched. There is no timeout.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return CommandResult(proc.returncode or 0, stdout, stderr)
