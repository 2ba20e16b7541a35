"""ICMP ping results model."""
from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, Index, Text
from smokewatch.database import Base


class PingResult(Base):
    """Time-series ping probe results per target."""
    __tablename__ = "ping_results"

    id = Column(Integer, primary_key=True, index=True)
    target_id = Column(Integer, ForeignKey("targets.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    packets_sent = Column(Integer, nullable=False)
    packets_received = Column(Integer, nullable=False, default=0)
    packet_loss = Column(Float, nullable=False, default=100.0)
    min_rtt = Column(Float)
    avg_rtt = Column(Float)
    max_rtt = Column(Float)
    jitter = Column(Float)
    is_alive = Column(Boolean, nullable=False, default=False)
    error = Column(Text)

    __table_args__ = (
        Index("ix_ping_results_target_ts", "target_id", "timestamp"),
    )
