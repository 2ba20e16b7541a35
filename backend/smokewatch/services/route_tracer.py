"""
Route probe executor.

Route discovery is an ordered chain of strategies: mtr first, traceroute
as fallback. Each strategy is tried once per cycle; the first one that
produces hops wins. If every strategy fails the result is an empty route
with destination_reached=False and the collected errors.
"""
import logging
from typing import List, Optional, Sequence

from smokewatch.config import Settings, settings as default_settings
from smokewatch.errors import ParseError, ProbeError
from smokewatch.schemas.probe import Hop, RouteSample, utcnow
from smokewatch.schemas.target import TargetInfo
from smokewatch.services.output_parsers import parse_mtr_json, parse_traceroute
from smokewatch.services.tool_runner import ToolRunner

logger = logging.getLogger(__name__)


class RouteStrategy:
    name = "route"

    def __init__(self, binary: str, timeout: float):
        self.binary = binary
        self.timeout = timeout

    def build_command(self, host: str) -> List[str]:
        raise NotImplementedError

    def parse(self, stdout: str) -> List[Hop]:
        raise NotImplementedError

    def destination_reached(self, hops: List[Hop]) -> bool:
        raise NotImplementedError

    async def trace(self, host: str, runner: ToolRunner) -> List[Hop]:
        result = await runner.run(self.build_command(host), timeout=self.timeout)
        return self.parse(result.stdout)


class MtrStrategy(RouteStrategy):
    name = "mtr"

    def __init__(self, binary: str = "mtr", timeout: float = 60, count: int = 10):
        super().__init__(binary, timeout)
        self.count = count

    def build_command(self, host: str) -> List[str]:
        return [self.binary, "-c", str(self.count), "-n", "-b", "-j", host]

    def parse(self, stdout: str) -> List[Hop]:
        hops = parse_mtr_json(stdout)
        if not hops:
            raise ParseError("mtr", "report contains no hops", raw_output=stdout)
        return hops

    def destination_reached(self, hops: List[Hop]) -> bool:
        # a completed mtr run reached the host even if the last hub stayed silent
        return True


class TracerouteStrategy(RouteStrategy):
    name = "traceroute"

    def __init__(self, binary: str = "traceroute", timeout: float = 60, max_hops: int = 30):
        super().__init__(binary, timeout)
        self.max_hops = max_hops

    def build_command(self, host: str) -> List[str]:
        return [self.binary, "-n", "-m", str(self.max_hops), host]

    def parse(self, stdout: str) -> List[Hop]:
        return parse_traceroute(stdout)

    def destination_reached(self, hops: List[Hop]) -> bool:
        return len(hops) > 0


def default_route_strategies(config: Optional[Settings] = None) -> List[RouteStrategy]:
    config = config or default_settings
    return [
        MtrStrategy(config.MTR_BIN, config.ROUTE_TIMEOUT_SECONDS, config.MTR_COUNT),
        TracerouteStrategy(config.TRACEROUTE_BIN, config.ROUTE_TIMEOUT_SECONDS, config.TRACEROUTE_MAX_HOPS),
    ]


async def trace_target(
    target: TargetInfo,
    runner: ToolRunner,
    strategies: Optional[Sequence[RouteStrategy]] = None,
) -> RouteSample:
    """Run the strategy chain against a target. Never raises for probe failures."""
    strategies = strategies if strategies is not None else default_route_strategies()
    timestamp = utcnow()
    errors: List[str] = []

    for strategy in strategies:
        try:
            hops = await strategy.trace(target.host, runner)
            return RouteSample(
                target_id=target.id,
                timestamp=timestamp,
                hops=hops,
                destination_reached=strategy.destination_reached(hops),
                tool=strategy.name,
            )
        except ProbeError as e:
            raw = getattr(e, "raw_output", None)
            if raw is not None:
                logger.debug("Unparseable %s output for %s: %r", strategy.name, target.host, raw)
            logger.warning("%s to %s (%s) failed: %s", strategy.name, target.name, target.host, e)
            errors.append(str(e))
        except ValueError as e:
            logger.warning("%s to %s (%s) returned an invalid route: %s",
                           strategy.name, target.name, target.host, e)
            errors.append(f"{strategy.name}: {e}")

    logger.warning("All route probes failed for %s (%s)", target.name, target.host)
    return RouteSample(
        target_id=target.id,
        timestamp=timestamp,
        hops=[],
        destination_reached=False,
        error="; ".join(errors) or "no route strategy configured",
    )
