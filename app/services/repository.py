"""
Persistence for users, price alerts, flight tracks and price history.

Wraps a SQLAlchemy session with the query shapes the monitors and the chat
flows need. Every mutating call commits.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import (
    FlightTrack,
    PriceAlert,
    PriceHistoryEntry,
    SubscriptionTier,
    TrackingStatus,
    User,
)
from app.services.flight_data import FlightStatus

logger = logging.getLogger(__name__)


class TrackingNotFound(Exception):
    """Alert or track does not exist."""


class OwnershipError(Exception):
    """Alert or track belongs to someone else."""


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def new_parent_route(origin: str, destination: str) -> str:
    """Group key for the segments of one journey, e.g. "JFK-LHR/1a2b3c4d"."""
    return f"{origin}-{destination}/{uuid.uuid4().hex[:8]}"


class TrackingRepository:

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def touch_user(self, user_id: str, username: Optional[str] = None) -> User:
        """Create the user on first contact, otherwise refresh username and last_active."""
        user = self.db.get(User, str(user_id))
        if user is None:
            user = User(id=str(user_id), username=username, subscription_tier=SubscriptionTier.FREE)
            self.db.add(user)
            logger.info(f"Registered user {user_id}")
        elif username:
            user.username = username
        user.last_active = datetime.utcnow()
        self.db.commit()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, str(user_id))

    def update_subscription(
        self,
        user_id: str,
        tier: SubscriptionTier,
        expiry: Optional[datetime] = None,
    ) -> User:
        user = self.touch_user(user_id)
        user.subscription_tier = tier
        user.subscription_expiry = expiry
        user.subscription_updated_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"User {user_id} subscription set to {tier.value}")
        return user

    def is_user_premium(self, user_id: str) -> bool:
        user = self.get_user(user_id)
        return bool(user and user.is_premium)

    # ------------------------------------------------------------------
    # Price alerts
    # ------------------------------------------------------------------

    def create_alert(
        self,
        user_id: str,
        origin: str,
        destination: str,
        departure_date,
        return_date=None,
        target_price=0,
        current_price=None,
        booking_url: Optional[str] = None,
    ) -> PriceAlert:
        self.touch_user(user_id)
        alert = PriceAlert(
            user_id=str(user_id),
            origin=origin.upper(),
            destination=destination.upper(),
            departure_date=_as_date(departure_date),
            return_date=_as_date(return_date),
            target_price=Decimal(str(target_price)),
            current_price=Decimal(str(current_price)) if current_price is not None else None,
            lowest_price=Decimal(str(current_price)) if current_price is not None else None,
            booking_url=booking_url,
            status=TrackingStatus.ACTIVE,
        )
        self.db.add(alert)
        self.db.commit()
        logger.info(f"Created alert {alert.id} for user {user_id}: {alert.route} on {alert.departure_date}")
        return alert

    def get_alert(self, alert_id: int) -> Optional[PriceAlert]:
        return self.db.get(PriceAlert, alert_id)

    def get_active_alerts(self) -> List[PriceAlert]:
        """All active alerts, least recently checked first (never-checked first of all)."""
        return (
            self.db.query(PriceAlert)
            .filter(PriceAlert.status == TrackingStatus.ACTIVE)
            .order_by(PriceAlert.last_checked.is_(None).desc(), PriceAlert.last_checked.asc(), PriceAlert.id)
            .all()
        )

    def get_user_alerts(self, user_id: str, active_only: bool = True) -> List[PriceAlert]:
        query = self.db.query(PriceAlert).filter(PriceAlert.user_id == str(user_id))
        if active_only:
            query = query.filter(PriceAlert.status == TrackingStatus.ACTIVE)
        return query.order_by(PriceAlert.created_at.desc(), PriceAlert.id.desc()).all()

    def expire_past_alerts(self, today: date) -> int:
        """Mark active alerts whose departure date has passed as expired."""
        expired = (
            self.db.query(PriceAlert)
            .filter(
                PriceAlert.status == TrackingStatus.ACTIVE,
                PriceAlert.departure_date < today,
            )
            .all()
        )
        for alert in expired:
            alert.status = TrackingStatus.EXPIRED
        if expired:
            self.db.commit()
            logger.info(f"Expired {len(expired)} alerts with past departure dates")
        return len(expired)

    def record_alert_check(self, alert: PriceAlert) -> None:
        """A check happened but produced no price; only last_checked moves."""
        alert.last_checked = datetime.utcnow()
        self.db.commit()

    def record_alert_price(
        self,
        alert: PriceAlert,
        price: Decimal,
        airline: Optional[str] = None,
        booking_url: Optional[str] = None,
    ) -> PriceHistoryEntry:
        """Store the new price, keep the running minimum and append history."""
        now = datetime.utcnow()
        alert.current_price = price
        if alert.lowest_price is None or price < alert.lowest_price:
            alert.lowest_price = price
        alert.last_checked = now
        if booking_url:
            alert.booking_url = booking_url

        entry = PriceHistoryEntry(
            alert_id=alert.id,
            user_id=alert.user_id,
            price=price,
            airline=airline,
            booking_url=booking_url,
            recorded_at=now,
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def cancel_alert(self, alert_id: int, user_id: str) -> PriceAlert:
        alert = self.get_alert(alert_id)
        if alert is None:
            raise TrackingNotFound(f"Alert {alert_id} not found")
        if alert.user_id != str(user_id):
            raise OwnershipError(f"Alert {alert_id} is not owned by user {user_id}")
        if alert.status == TrackingStatus.ACTIVE:
            alert.status = TrackingStatus.CANCELLED
            alert.cancelled_at = datetime.utcnow()
            self.db.commit()
            logger.info(f"Alert {alert_id} cancelled by user {user_id}")
        return alert

    def get_price_history(self, alert_id: int, limit: Optional[int] = None) -> List[PriceHistoryEntry]:
        query = (
            self.db.query(PriceHistoryEntry)
            .filter(PriceHistoryEntry.alert_id == alert_id)
            .order_by(PriceHistoryEntry.recorded_at.desc(), PriceHistoryEntry.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def users_with_active_alerts(self) -> List[str]:
        rows = (
            self.db.query(PriceAlert.user_id)
            .filter(PriceAlert.status == TrackingStatus.ACTIVE)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def user_stats(self, user_id: str) -> dict:
        """Alert counts and best observed price across the user's alerts."""
        total = self.db.query(func.count(PriceAlert.id)).filter(PriceAlert.user_id == str(user_id)).scalar()
        active = (
            self.db.query(func.count(PriceAlert.id))
            .filter(PriceAlert.user_id == str(user_id), PriceAlert.status == TrackingStatus.ACTIVE)
            .scalar()
        )
        best = (
            self.db.query(func.min(PriceHistoryEntry.price))
            .filter(PriceHistoryEntry.user_id == str(user_id))
            .scalar()
        )
        since = datetime.utcnow() - timedelta(days=7)
        checks_this_week = (
            self.db.query(func.count(PriceHistoryEntry.id))
            .filter(PriceHistoryEntry.user_id == str(user_id), PriceHistoryEntry.recorded_at >= since)
            .scalar()
        )
        return {
            "total_alerts": total or 0,
            "active_alerts": active or 0,
            "best_price": Decimal(str(best)) if best is not None else None,
            "checks_this_week": checks_this_week or 0,
        }

    # ------------------------------------------------------------------
    # Flight tracks
    # ------------------------------------------------------------------

    def create_flight_track(
        self,
        user_id: str,
        carrier_code: str,
        flight_number: str,
        flight_date,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
        is_segment: bool = False,
        segment_index: Optional[int] = None,
        parent_route: Optional[str] = None,
    ) -> FlightTrack:
        self.touch_user(user_id)
        track = FlightTrack(
            user_id=str(user_id),
            carrier_code=carrier_code.upper(),
            flight_number=str(flight_number),
            flight_date=_as_date(flight_date),
            origin=origin,
            destination=destination,
            is_segment=is_segment,
            segment_index=segment_index,
            parent_route=parent_route,
            status=TrackingStatus.ACTIVE,
        )
        self.db.add(track)
        self.db.commit()
        logger.info(f"Created flight track {track.id} for user {user_id}: {track.designator} on {track.flight_date}")
        return track

    def get_flight_track(self, track_id: int) -> Optional[FlightTrack]:
        return self.db.get(FlightTrack, track_id)

    def get_all_active_tracks(self) -> List[FlightTrack]:
        """Active tracks across all users; journey segments stay in index order."""
        return (
            self.db.query(FlightTrack)
            .filter(FlightTrack.status == TrackingStatus.ACTIVE)
            .order_by(FlightTrack.user_id, FlightTrack.parent_route, FlightTrack.segment_index, FlightTrack.id)
            .all()
        )

    def get_user_tracks(self, user_id: str) -> List[FlightTrack]:
        return (
            self.db.query(FlightTrack)
            .filter(FlightTrack.user_id == str(user_id), FlightTrack.status == TrackingStatus.ACTIVE)
            .order_by(FlightTrack.created_at, FlightTrack.segment_index, FlightTrack.id)
            .all()
        )

    def update_track_status(self, track: FlightTrack, status: FlightStatus) -> None:
        track.last_status = status.to_dict()
        track.last_checked = datetime.utcnow()
        if not track.origin and status.departure_airport:
            track.origin = status.departure_airport
        if not track.destination and status.arrival_airport:
            track.destination = status.arrival_airport
        self.db.commit()

    def touch_track_check(self, track: FlightTrack) -> None:
        track.last_checked = datetime.utcnow()
        self.db.commit()

    def _find_user_track(self, track_id: int, user_id: str) -> Optional[FlightTrack]:
        return (
            self.db.query(FlightTrack)
            .filter(FlightTrack.id == track_id, FlightTrack.user_id == str(user_id))
            .first()
        )

    def cancel_flight_track(self, track_id: int, user_id: str) -> List[FlightTrack]:
        """
        Cancel a track, or the whole journey when it is a segment.

        Looks in the user's own tracks first, then globally, and rejects
        tracks owned by someone else. Cancelling an already cancelled
        track is a no-op. Returns the tracks that are now cancelled.
        """
        track = self._find_user_track(track_id, user_id)
        if track is None:
            track = self.get_flight_track(track_id)
            if track is None:
                raise TrackingNotFound(f"Flight track {track_id} not found")
            if track.user_id != str(user_id):
                raise OwnershipError(f"Flight track {track_id} is not owned by user {user_id}")

        if track.is_segment and track.parent_route:
            tracks = (
                self.db.query(FlightTrack)
                .filter(FlightTrack.parent_route == track.parent_route, FlightTrack.user_id == str(user_id))
                .order_by(FlightTrack.segment_index)
                .all()
            )
        else:
            tracks = [track]

        now = datetime.utcnow()
        for t in tracks:
            if t.status == TrackingStatus.ACTIVE:
                t.status = TrackingStatus.CANCELLED
                t.cancelled_at = now
        self.db.commit()
        logger.info(f"Cancelled {len(tracks)} flight track(s) starting at {track_id} for user {user_id}")
        return tracks
