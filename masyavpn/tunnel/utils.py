"""Utility functions for tunnel management."""

import asyncio
import subprocess
import sys
from typing import Any, Awaitable, Dict, Optional, Tuple

from .commands import CommandError
from ..logging_utility import logger


def spawn_options() -> Dict[str, Any]:
    """Extra subprocess options: no console window on Windows."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def _decode(data: Optional[bytes]) -> str:
    return data.decode(errors="replace") if data else ""


async def run_command(cmd: list[str], check: bool = True, timeout: Optional[float] = None) -> Tuple[str, str]:
    """
    Run command and return output.

    Args:
        cmd: Command as list of strings
        check: Whether to raise exception on non-zero exit
        timeout: Seconds to wait before killing the command

    Returns:
        Tuple of (stdout, stderr)
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **spawn_options(),
        )
    except OSError as e:
        raise CommandError(f"Command failed to start: {' '.join(cmd)}\n{e}")

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandError(f"Command timed out after {timeout}s: {' '.join(cmd)}")

    out, err = _decode(stdout), _decode(stderr)
    if check and process.returncode != 0:
        raise CommandError(
            f"Command failed ({process.returncode}): {' '.join(cmd)}\n{err or out}",
            returncode=process.returncode,
            output=err or out,
        )
    return out, err


async def best_effort(description: str, action: Awaitable[Any]) -> bool:
    """
    Await a cleanup action, logging instead of raising on failure.

    Args:
        description: What the action does, for the log
        action: Awaitable to run

    Returns:
        bool: True if the action completed
    """
    try:
        await action
        return True
    except Exception as e:
        logger.warning(f"{description} failed (ignored): {e}")
        return False
