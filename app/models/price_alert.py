
from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.tracking_status import TrackingStatus


class PriceAlert(Base):
    """
    A standing watch over a route/date pair.

    target_price == 0 means "notify on any price change" rather than
    "notify below zero". lowest_price is a running minimum of every observed
    price, so lowest_price <= current_price whenever both are set.
    """
    __tablename__ = "price_alerts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Route
    origin = Column(String(3), nullable=False)
    destination = Column(String(3), nullable=False)
    departure_date = Column(Date, nullable=False, index=True)
    return_date = Column(Date, nullable=True)  # Null for one-way

    target_price = Column(Numeric(10, 2), nullable=False, default=0)
    current_price = Column(Numeric(10, 2), nullable=True)  # Unknown until first successful check
    lowest_price = Column(Numeric(10, 2), nullable=True)
    booking_url = Column(String(500), nullable=True)

    status = Column(SQLEnum(TrackingStatus), default=TrackingStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())
    last_checked = Column(DateTime, nullable=True, index=True)
    cancelled_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="alerts")
    history = relationship(
        "PriceHistoryEntry",
        back_populates="alert",
        order_by="PriceHistoryEntry.recorded_at.desc()",
    )

    @property
    def is_active(self) -> bool:
        return self.status == TrackingStatus.ACTIVE

    @property
    def is_any_change_mode(self) -> bool:
        return self.target_price is not None and self.target_price == 0

    @property
    def route(self) -> str:
        return f"{self.origin}-{self.destination}"

    def __repr__(self) -> str:
        return f"<PriceAlert {self.id}: {self.route} on {self.departure_date} ({self.status.value})>"
