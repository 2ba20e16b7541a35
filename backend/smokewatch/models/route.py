"""MTR / traceroute results model."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, Text
from smokewatch.database import Base


class RouteResult(Base):
    __tablename__ = "route_results"

    id = Column(Integer, primary_key=True, index=True)
    target_id = Column(Integer, ForeignKey("targets.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    hops = Column(Text, nullable=False, default="[]")  # JSON array of hop objects
    destination_reached = Column(Boolean, nullable=False, default=False)
    total_hops = Column(Integer, nullable=False, default=0)
    tool = Column(String(20))  # mtr, traceroute, or NULL when every tool failed
    error = Column(Text)

    __table_args__ = (
        Index("ix_route_results_target_ts", "target_id", "timestamp"),
    )
