from smokewatch.schemas.target import TargetInfo
from smokewatch.schemas.probe import (
    PingSample, Hop, RouteSample, TimelinePoint, TimelineResponse, PingStatistics,
)

__all__ = [
    "TargetInfo",
    "PingSample", "Hop", "RouteSample",
    "TimelinePoint", "TimelineResponse", "PingStatistics",
]
