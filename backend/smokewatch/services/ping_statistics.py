from typing import Sequence

from smokewatch.schemas.probe import PingSample, PingStatistics


def summarize_pings(target_id: int, samples: Sequence[PingSample]) -> PingStatistics:
    """Uptime and RTT summary over a window. RTT aggregates skip failed probes."""
    if not samples:
        return PingStatistics(target_id=target_id)

    avg_rtts = [s.avg_rtt for s in samples if s.avg_rtt is not None]
    min_rtts = [s.min_rtt for s in samples if s.min_rtt is not None]
    max_rtts = [s.max_rtt for s in samples if s.max_rtt is not None]
    alive = sum(1 for s in samples if s.is_alive)

    return PingStatistics(
        target_id=target_id,
        total_checks=len(samples),
        avg_rtt=sum(avg_rtts) / len(avg_rtts) if avg_rtts else None,
        min_rtt=min(min_rtts) if min_rtts else None,
        max_rtt=max(max_rtts) if max_rtts else None,
        avg_packet_loss=sum(s.packet_loss for s in samples) / len(samples),
        uptime_percentage=alive / len(samples) * 100,
        last_check=max(s.timestamp for s in samples),
    )
