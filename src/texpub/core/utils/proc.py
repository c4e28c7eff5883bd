"""Async subprocess execution with a hard timeout"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, slots=True)
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def message(self) -> str:
        """Best available failure description."""
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


async def run_process(
    *args: str,
    timeout: float,
    data: Optional[bytes] = None,
    cwd: Optional[Path] = None,
    ) -> ProcessResult:
    """Run args, killing the process after timeout seconds.

    A missing executable is reported as returncode 127 rather than raised.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE if data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except FileNotFoundError:
        return ProcessResult(127, "", f"Command not found: {args[0]}")

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(data), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.communicate()
        return ProcessResult(-1, "", f"Timed out after {timeout:g}s: {' '.join(args)}", timed_out=True)

    return ProcessResult(
        proc.returncode,
        stdout_bytes.decode("utf-8", errors="replace"),
        stderr_bytes.decode("utf-8", errors="replace"),
    )
