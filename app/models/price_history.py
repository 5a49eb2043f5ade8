from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class PriceHistoryEntry(Base):
    """Append-only price observation for an alert. Never mutated or deleted."""
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    alert_id = Column(Integer, ForeignKey("price_alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    price = Column(Numeric(10, 2), nullable=False)
    airline = Column(String(100), nullable=True)
    booking_url = Column(String(500), nullable=True)
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    alert = relationship("PriceAlert", back_populates="history")

    def __repr__(self) -> str:
        return f"<PriceHistoryEntry {self.id}: ${self.price} at {self.recorded_at}>"
