"""ICMP ping probe executor."""
import logging
import platform as platform_mod
from typing import List, Optional

from smokewatch.config import settings
from smokewatch.errors import ProbeError
from smokewatch.schemas.probe import PingSample, utcnow
from smokewatch.schemas.target import TargetInfo
from smokewatch.services.output_parsers import is_bsd_platform, parse_ping
from smokewatch.services.tool_runner import ToolRunner

logger = logging.getLogger(__name__)


def current_platform() -> str:
    return platform_mod.system().lower()


def build_ping_command(host: str, count: int, timeout: int, platform: str,
                       ping_bin: str = "ping") -> List[str]:
    if is_bsd_platform(platform):
        # BSD/macOS ping takes -W in milliseconds
        return [ping_bin, "-c", str(count), "-W", str(timeout * 1000), host]
    return [ping_bin, "-c", str(count), "-W", str(timeout), host]


async def ping_target(
    target: TargetInfo,
    runner: ToolRunner,
    count: Optional[int] = None,
    timeout: Optional[int] = None,
    platform: Optional[str] = None,
    ping_bin: Optional[str] = None,
) -> PingSample:
    """
    Ping a target and return a PingSample.
    Never raises for probe failures: a missing binary, a timeout or
    unparseable output all produce a 100% loss sample carrying the error.
    """
    count = count or settings.PING_COUNT
    timeout = timeout or settings.PING_TIMEOUT_SECONDS
    platform = platform or current_platform()
    timestamp = utcnow()

    cmd = build_ping_command(target.host, count, timeout, platform, ping_bin or settings.PING_BIN)
    try:
        # ping exits non-zero when nothing answered; the summary is still printed
        result = await runner.run(cmd, timeout=count + timeout + 5, check=False)
        fields = parse_ping(result.stdout, platform)
        return PingSample(target_id=target.id, timestamp=timestamp, **fields)
    except ProbeError as e:
        raw = getattr(e, "raw_output", None)
        if raw is not None:
            logger.debug("Unparseable ping output for %s: %r", target.host, raw)
        logger.warning("Ping %s (%s) failed: %s", target.name, target.host, e)
        return PingSample.failed(target.id, count, error=str(e), timestamp=timestamp)
    except ValueError as e:
        logger.warning("Ping %s (%s) produced an inconsistent summary: %s", target.name, target.host, e)
        return PingSample.failed(target.id, count, error=f"ping: {e}", timestamp=timestamp)
