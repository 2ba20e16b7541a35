from smokewatch.models.target import Target
from smokewatch.models.ping import PingResult
from smokewatch.models.route import RouteResult

__all__ = [
    "Target",
    "PingResult",
    "RouteResult",
]
