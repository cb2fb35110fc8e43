"""
External Tool Runner - Uniform subprocess adapter for yt-dlp and ffmpeg.

Arguments are always passed as a discrete list (never through a shell), so
user-supplied values cannot be interpreted as shell syntax. stdout and stderr
are merged for diagnostics and every call carries a timeout.
"""

import asyncio
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

# Tail of tool output kept in log lines
LOG_OUTPUT_CHARS = 1000


@dataclass
class ToolResult:
    """Result of a completed external tool invocation."""

    tool: str
    args: list[str]
    returncode: int
    output: str
    duration_seconds: float


class ExternalToolRunner:
    """
    Runs external command-line tools as subprocesses.

    The blocking subprocess.run call is executed in the default thread pool
    (asyncio.create_subprocess_exec needs a ProactorEventLoop on Windows).
    subprocess.run kills the child when the timeout expires.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def _run_sync(self, cmd: list[str], timeout: Optional[float]) -> subprocess.CompletedProcess:
        return subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )

    async def invoke(
        self,
        tool: str,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """
        Invoke a tool and wait for it to exit.

        Args:
            tool: Executable name or path
            args: Arguments passed verbatim, one list item per argument
            timeout: Seconds before the process is killed (None = no limit)

        Returns:
            ToolResult with combined output

        Raises:
            ExternalToolTimeout: If the timeout expired (process was killed)
            ExternalToolError: If the tool is missing or exited non-zero
        """
        cmd = [tool, *args]
        self.logger.debug(f"Running: {' '.join(cmd[:10])}...")

        started = time.monotonic()
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, self._run_sync, cmd, timeout)
        except subprocess.TimeoutExpired as e:
            output = _decode(e.output)
            elapsed = time.monotonic() - started
            self.logger.warning(f"{tool} timed out after {elapsed:.1f}s (limit {timeout}s)")
            raise ExternalToolTimeout(tool, output, timeout=timeout)
        except OSError as e:
            raise ExternalToolError(tool, None, str(e))

        elapsed = time.monotonic() - started
        output = _decode(result.stdout)

        if result.returncode != 0:
            self.logger.warning(
                f"{tool} exited with code {result.returncode} after {elapsed:.1f}s: "
                f"{output[-LOG_OUTPUT_CHARS:]}"
            )
            raise ExternalToolError(tool, result.returncode, output)

        self.logger.debug(f"{tool} finished in {elapsed:.1f}s")
        return ToolResult(
            tool=tool,
            args=list(args),
            returncode=result.returncode,
            output=output,
            duration_seconds=elapsed,
        )

    def is_available(self, tool: str) -> bool:
        """Check whether a tool can be found on PATH."""
        return shutil.which(tool) is not None


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


class ExternalToolError(Exception):
    """Exception raised when an external tool is missing or exits non-zero."""

    def __init__(
        self,
        tool: str,
        returncode: Optional[int],
        output: str = "",
        message: Optional[str] = None,
    ):
        self.tool = tool
        self.returncode = returncode
        self.output = output
        if message is None:
            if returncode is None:
                message = f"{tool} could not be run: {output[-200:]}"
            else:
                message = f"{tool} exited with code {returncode}"
        super().__init__(message)


class ExternalToolTimeout(ExternalToolError):
    """Exception raised when an external tool exceeds its timeout."""

    def __init__(self, tool: str, output: str = "", timeout: Optional[float] = None):
        self.timeout = timeout
        super().__init__(tool, None, output, message=f"{tool} timed out after {timeout}s")
