import enum


class TrackingStatus(str, enum.Enum):
    """Lifecycle of alerts and flight tracks. Nothing is ever hard-deleted."""
    ACTIVE = "active"
    CANCELLED = "cancelled"  # by the user
    EXPIRED = "expired"      # departure date passed
