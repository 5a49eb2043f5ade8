from datetime import datetime

from sqlalchemy import Column, String, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
import enum


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(Base):
    """
    A chat user, keyed by the opaque id the chat transport gives us.

    Created on first interaction and never hard-deleted.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    username = Column(String(100), nullable=True)

    subscription_tier = Column(SQLEnum(SubscriptionTier), default=SubscriptionTier.FREE, nullable=False)
    subscription_expiry = Column(DateTime, nullable=True)
    subscription_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    last_active = Column(DateTime, default=datetime.utcnow)

    alerts = relationship("PriceAlert", back_populates="user")
    flight_tracks = relationship("FlightTrack", back_populates="user")

    @property
    def is_premium(self) -> bool:
        if self.subscription_tier != SubscriptionTier.PREMIUM:
            return False
        return self.subscription_expiry is None or self.subscription_expiry > datetime.utcnow()

    def __repr__(self) -> str:
        return f"<User {self.id} ({self.subscription_tier.value if self.subscription_tier else 'free'})>"
