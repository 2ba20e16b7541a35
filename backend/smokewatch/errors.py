"""
Error taxonomy for probing and storage.

Probe errors are caught at the executor boundary and turned into failure
samples. StoreError is the only class that is allowed to propagate.
"""
from typing import Optional


class ProbeError(Exception):
    """Base class for a probe that did not yield a usable measurement."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool


class ToolUnavailable(ProbeError):
    """Binary missing or not executable."""


class ToolTimeout(ProbeError):
    def __init__(self, tool: str, timeout: float):
        super().__init__(tool, f"timed out after {timeout:g}s")
        self.timeout = timeout


class ToolFailed(ProbeError):
    """Tool exited with a non-zero status."""

    def __init__(self, tool: str, returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no stderr"
        super().__init__(tool, f"exit status {returncode} ({detail})")
        self.returncode = returncode
        self.stderr = stderr


class ParseError(ProbeError):
    """Tool output did not have a recognised shape."""

    def __init__(self, tool: str, message: str, raw_output: Optional[str] = None):
        super().__init__(tool, message)
        self.raw_output = raw_output


class StoreError(Exception):
    """Persistence failure. Never swallowed."""


class TargetNotFound(LookupError):
    def __init__(self, target_id: int):
        super().__init__(f"Target {target_id} not found")
        self.target_id = target_id
