from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PingSample(BaseModel):
    """Result of one ping probe. A failed probe is a sample with 100% loss."""
    target_id: int
    timestamp: datetime = Field(default_factory=utcnow)
    packets_sent: int = Field(ge=0)
    packets_received: int = Field(ge=0)
    packet_loss: float = Field(ge=0, le=100)
    min_rtt: Optional[float] = None
    avg_rtt: Optional[float] = None
    max_rtt: Optional[float] = None
    jitter: Optional[float] = None
    is_alive: bool = False
    error: Optional[str] = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_counts(self):
        if self.packets_received > self.packets_sent:
            raise ValueError(
                f"packets_received ({self.packets_received}) exceeds packets_sent ({self.packets_sent})"
            )
        if self.packets_received == 0:
            if any(v is not None for v in (self.min_rtt, self.avg_rtt, self.max_rtt, self.jitter)):
                raise ValueError("RTT fields must be null when no packets were received")
            if self.packet_loss != 100:
                raise ValueError("packet_loss must be 100 when no packets were received")
        self.is_alive = self.packets_received > 0
        return self

    @classmethod
    def failed(cls, target_id: int, packets_sent: int, error: Optional[str] = None,
               timestamp: Optional[datetime] = None) -> "PingSample":
        return cls(
            target_id=target_id,
            timestamp=timestamp or utcnow(),
            packets_sent=packets_sent,
            packets_received=0,
            packet_loss=100.0,
            error=error,
        )


class Hop(BaseModel):
    """One node along a traced path. ip/hostname are null for a non-responding hop."""
    hop: int = Field(ge=1)
    ip: Optional[str] = None
    hostname: Optional[str] = None
    loss: float = 0.0
    sent: Optional[int] = None
    last: Optional[float] = None
    avg_rtt: Optional[float] = None
    min_rtt: Optional[float] = None
    max_rtt: Optional[float] = None
    std_dev: Optional[float] = None
    rtts: List[float] = Field(default_factory=list)


class RouteSample(BaseModel):
    target_id: int
    timestamp: datetime = Field(default_factory=utcnow)
    hops: List[Hop] = Field(default_factory=list)
    destination_reached: bool = False
    total_hops: Optional[int] = None
    tool: Optional[str] = None
    error: Optional[str] = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_hops(self):
        if self.total_hops is None:
            self.total_hops = len(self.hops)
        elif self.total_hops != len(self.hops):
            raise ValueError(f"total_hops ({self.total_hops}) != number of hops ({len(self.hops)})")
        for expected, hop in enumerate(self.hops, start=1):
            if hop.hop != expected:
                raise ValueError(f"hop numbers must be contiguous from 1 (got {hop.hop} at position {expected})")
        return self


AnomalyKind = Literal["loss", "spike", "none"]


class TimelinePoint(BaseModel):
    timestamp: datetime
    has_anomaly: bool
    anomaly: AnomalyKind = "none"
    avg_rtt: Optional[float] = None
    packet_loss: float = 0.0


class TimelineResponse(BaseModel):
    target_id: int
    start: datetime
    end: datetime
    points: List[TimelinePoint]
    current_rtt: Optional[float] = None  # latest sample overall, not bound to the window


class PingStatistics(BaseModel):
    target_id: int
    total_checks: int = 0
    avg_rtt: Optional[float] = None
    min_rtt: Optional[float] = None
    max_rtt: Optional[float] = None
    avg_packet_loss: Optional[float] = None
    uptime_percentage: Optional[float] = None
    last_check: Optional[datetime] = None
