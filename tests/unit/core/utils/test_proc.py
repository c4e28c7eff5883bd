"""Unit tests for core/utils/proc.py"""

import sys

import pytest

from texpub.core.utils.proc import run_process


@pytest.mark.asyncio
async def test_run_process_captures_output():
    """stdout is decoded and stdin data is delivered."""
    result = await run_process(
        sys.executable, "-c", "import sys; print(sys.stdin.read().upper())",
        timeout=30, data=b"bonjour",
    )
    assert result.ok
    assert result.stdout.strip() == "BONJOUR"


@pytest.mark.asyncio
async def test_run_process_missing_executable():
    """A missing executable yields returncode 127 instead of raising."""
    result = await run_process("texpub-no-such-binary", timeout=5)
    assert result.returncode == 127
    assert not result.ok
    assert "Command not found" in result.message()


@pytest.mark.asyncio
async def test_run_process_timeout_kills():
    """A process exceeding the timeout is killed and reported as timed out."""
    result = await run_process(sys.executable, "-c", "import time; time.sleep(30)", timeout=0.5)
    assert result.timed_out
    assert not result.ok
    assert "Timed out" in result.message()
