"""
Subprocess execution for network diagnostic tools.

Every run is bounded by a timeout; a process that overruns it is killed.
The runner keeps track of live processes so shutdown can kill whatever is
still running once the grace period is over.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Sequence, Set

from smokewatch.errors import ToolFailed, ToolTimeout, ToolUnavailable

logger = logging.getLogger(__name__)


@dataclass
class ToolOutput:
    stdout: str
    stderr: str
    returncode: int


class ToolRunner:
    def __init__(self):
        self._processes: Set[asyncio.subprocess.Process] = set()

    @property
    def active_count(self) -> int:
        return len(self._processes)

    async def run(self, cmd: Sequence[str], timeout: float, check: bool = True) -> ToolOutput:
        """
        Run cmd and return its output.
        Raises ToolUnavailable, ToolTimeout, or ToolFailed (non-zero exit, only when check=True).
        """
        args: List[str] = [str(part) for part in cmd]
        tool = args[0]
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailable(tool, str(e)) from e

        self._processes.add(proc)
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await self._kill(proc)
            raise ToolTimeout(tool, timeout) from e
        except asyncio.CancelledError:
            await self._kill(proc)
            raise
        finally:
            self._processes.discard(proc)

        output = ToolOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=proc.returncode,
        )
        if check and output.returncode != 0:
            raise ToolFailed(tool, output.returncode, output.stderr)
        return output

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    def kill_all(self) -> int:
        """Kill every live subprocess. Returns how many were signalled."""
        killed = 0
        for proc in list(self._processes):
            if proc.returncode is None:
                try:
                    proc.kill()
                    killed += 1
                except ProcessLookupError:
                    pass
        if killed:
            logger.warning("Killed %d in-flight probe process(es)", killed)
        return killed
