"""
Anomaly Detector - classifies ping samples for timeline display.

Any packet loss is a loss anomaly. Otherwise a sample is a latency spike
when its avg RTT exceeds either the window-wide threshold

    max(min(Q3 + 1.5 * IQR, median * 1.5), median + 5)

or the local threshold (more than 2x, or more than 10ms above, the mean of
the preceding `window` samples). The global test catches a sustained tier
shift, the local one a short burst, and neither flags a host whose stable
baseline is simply high.
"""
from datetime import datetime
from typing import List, Optional, Sequence

from smokewatch.schemas.probe import PingSample, TimelinePoint

IQR_FACTOR = 1.5
RELATIVE_FACTOR = 1.5
ABSOLUTE_MARGIN_MS = 5.0
LOCAL_FACTOR = 2.0
LOCAL_MARGIN_MS = 10.0
MAX_LOCAL_WINDOW = 5


def global_threshold(rtts: Sequence[float]) -> Optional[float]:
    if not rtts:
        return None
    s = sorted(rtts)
    n = len(s)
    q1 = s[int(n * 0.25)]
    q3 = s[int(n * 0.75)]
    median = s[int(n * 0.5)]
    iqr_upper = q3 + IQR_FACTOR * (q3 - q1)
    relative = median * RELATIVE_FACTOR
    return max(min(iqr_upper, relative), median + ABSOLUTE_MARGIN_MS)


def local_window_size(length: int) -> int:
    return min(MAX_LOCAL_WINDOW, length // 10 or 1)


def compute_timeline(samples: Sequence[PingSample]) -> List[TimelinePoint]:
    """Classify each sample of a chronologically ordered window. Output is parallel to input."""
    rtts = [s.avg_rtt for s in samples if s.avg_rtt is not None]
    threshold = global_threshold(rtts)
    window = local_window_size(len(samples))

    points: List[TimelinePoint] = []
    for index, sample in enumerate(samples):
        if sample.packet_loss > 0:
            anomaly = "loss"
        elif sample.avg_rtt is None:
            anomaly = "none"
        else:
            spike = threshold is not None and sample.avg_rtt > threshold
            if not spike and index >= window:
                recent = [s.avg_rtt for s in samples[index - window:index] if s.avg_rtt is not None]
                if recent:
                    local_avg = sum(recent) / len(recent)
                    spike = (sample.avg_rtt > local_avg * LOCAL_FACTOR
                             or sample.avg_rtt > local_avg + LOCAL_MARGIN_MS)
            anomaly = "spike" if spike else "none"

        points.append(TimelinePoint(
            timestamp=sample.timestamp,
            has_anomaly=anomaly != "none",
            anomaly=anomaly,
            avg_rtt=sample.avg_rtt,
            packet_loss=sample.packet_loss,
        ))
    return points


def select_window(samples: Sequence[PingSample], start: datetime,
                  end: Optional[datetime] = None) -> List[PingSample]:
    """Samples with start <= timestamp <= end, oldest first."""
    window = [s for s in samples if s.timestamp >= start and (end is None or s.timestamp <= end)]
    return sorted(window, key=lambda s: s.timestamp)
