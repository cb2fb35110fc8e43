"""
Pytest configuration and fixtures.
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.config import Settings
from app.services.tool_runner import ExternalToolError, ExternalToolTimeout, ToolResult


class FixedCeilingSettings(Settings):
    """Settings whose worker ceiling does not depend on the test machine."""

    @property
    def worker_ceiling(self) -> int:
        return 64


class FakeToolRunner:
    """
    Stands in for yt-dlp and ffmpeg.

    yt-dlp writes fake source bytes to its -o path; ffmpeg writes fake clip
    bytes to its last argument. Failures, timeouts, unexpected crashes and
    delays are configurable per tool, and concurrency is recorded.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: list[tuple[str, list[str]]] = []
        self.fail_tools: set[str] = set()
        self.timeout_tools: set[str] = set()
        self.crash_tools: set[str] = set()
        self.empty_output = False
        self.download_suffix = ""
        self.in_flight = 0
        self.max_in_flight = 0
        self.available = True

    def calls_for(self, tool: str) -> list[list[str]]:
        return [args for name, args in self.calls if name == tool]

    async def invoke(self, tool, args, timeout=None):
        args = list(args)
        self.calls.append((tool, args))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)

            if tool in self.crash_tools:
                raise RuntimeError(f"{tool} adapter blew up")
            if tool in self.timeout_tools:
                raise ExternalToolTimeout(tool, "partial output", timeout=timeout)
            if tool in self.fail_tools:
                raise ExternalToolError(tool, 1, f"{tool}: ERROR: simulated failure")

            if tool == "yt-dlp":
                output_path = Path(args[args.index("-o") + 1])
                Path(f"{output_path}{self.download_suffix}").write_bytes(b"source-video")
            elif tool == "ffmpeg":
                Path(args[-1]).write_bytes(b"" if self.empty_output else b"clipped-video")

            return ToolResult(tool=tool, args=args, returncode=0, output="ok", duration_seconds=self.delay)
        finally:
            self.in_flight -= 1

    def is_available(self, tool: str) -> bool:
        return self.available


@pytest.fixture
def download_dir(tmp_path):
    """Per-test download directory (not created up front)."""
    return tmp_path / "download"


@pytest.fixture
def settings(download_dir):
    """Settings isolated from the environment and any .env file."""
    return FixedCeilingSettings(
        _env_file=None,
        download_directory=str(download_dir),
        base_url="http://clips.test",
        max_workers=2,
        download_timeout_seconds=5,
        trim_timeout_seconds=5,
        artifact_ttl_seconds=3600,
        retention_sweep_interval_seconds=3600,
        retrieval_grace_seconds=60,
        shutdown_grace_seconds=5,
    )


@pytest.fixture
def fake_tools():
    """Fake external tool runner."""
    return FakeToolRunner()
