from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, JSON, ForeignKey, UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.tracking_status import TrackingStatus


class FlightTrack(Base):
    """
    A standing watch over one flight's schedule.

    Tracking a connecting itinerary fans out into one FlightTrack per leg;
    the legs share parent_route and are ordered by segment_index.
    """
    __tablename__ = "flight_tracks"
    __table_args__ = (
        UniqueConstraint("parent_route", "segment_index", name="uq_flight_tracks_segment"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    carrier_code = Column(String(3), nullable=False)
    flight_number = Column(String(6), nullable=False)
    flight_date = Column(Date, nullable=False)

    # Unknown for flight-number tracks until the first status fetch
    origin = Column(String(3), nullable=True)
    destination = Column(String(3), nullable=True)

    # Serialized FlightStatus (see app.services.flight_data)
    last_status = Column(JSON, nullable=True)
    last_checked = Column(DateTime, nullable=True)

    # Multi-segment linkage
    is_segment = Column(Boolean, default=False, nullable=False)
    segment_index = Column(Integer, nullable=True)
    parent_route = Column(String(40), nullable=True, index=True)

    status = Column(SQLEnum(TrackingStatus), default=TrackingStatus.ACTIVE, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    cancelled_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="flight_tracks")

    @property
    def is_active(self) -> bool:
        return self.status == TrackingStatus.ACTIVE

    @property
    def designator(self) -> str:
        return f"{self.carrier_code}{self.flight_number}"

    @property
    def journey_label(self) -> str:
        """Route part of parent_route ("JFK-LHR/1a2b3c4d" -> "JFK-LHR")."""
        if not self.parent_route:
            return f"{self.origin or 'N/A'}-{self.destination or 'N/A'}"
        return self.parent_route.split("/", 1)[0]

    def __repr__(self) -> str:
        return f"<FlightTrack {self.id}: {self.designator} on {self.flight_date}>"
