"""Subprocess helper with timeout support for the docker, git and kubectl adapters."""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Union

logger = logging.getLogger("kubeforge.subprocess")


@dataclass
class CommandResult:
    """Result of a command execution."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_command(
    cmd: Union[str, List[str]],
    timeout: Optional[float] = None,
    cwd: Optional[str] = None,
    env: Optional[dict] = None,
    input_text: Optional[str] = None,
) -> CommandResult:
    """
    Run a command with an optional timeout.

    Never raises for a failing, missing or timed-out command; the outcome
    is reported through the returned CommandResult.
    """
    if isinstance(cmd, str):
        cmd = cmd.split()

    logger.debug(f"Running command: {cmd}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=env,
            input=input_text,
        )
        return CommandResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)
    except subprocess.TimeoutExpired:
        logger.debug(f"Command timed out after {timeout}s: {cmd}")
        return CommandResult(
            returncode=-1,
            stdout="",
            stderr=f"command timed out after {timeout} seconds",
            timed_out=True,
        )
    except FileNotFoundError as e:
        logger.debug(f"Command not found: {cmd[0]}")
        return CommandResult(returncode=127, stdout="", stderr=str(e))


def check_tool_available(tool: str) -> bool:
    return shutil.which(tool) is not None
