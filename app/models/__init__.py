# SQLAlchemy models
from app.models.user import User, SubscriptionTier
from app.models.tracking_status import TrackingStatus
from app.models.price_alert import PriceAlert
from app.models.price_history import PriceHistoryEntry
from app.models.flight_track import FlightTrack

__all__ = [
    "User",
    "PriceAlert",
    "PriceHistoryEntry",
    "FlightTrack",
    # Enums
    "SubscriptionTier",
    "TrackingStatus",
]
