"""
Flight status tracking.

Re-fetches the schedule for every active FlightTrack and notifies the owner
when something material moved, plus a daily heartbeat so users know the
track is still alive.
"""
import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import FlightTrack
from app.services.callbacks import CallbackAction, CallbackKind
from app.services.chat import Choice
from app.services.flight_data import FlightDataProvider, FlightStatus, ProviderError, Segment
from app.services.notification import Notifier
from app.services.repository import TrackingRepository, new_parent_route

logger = logging.getLogger(__name__)


def should_notify(
    previous: Optional[FlightStatus],
    current: FlightStatus,
    threshold_minutes: int = 10,
    heartbeat: timedelta = timedelta(hours=24),
    now: Optional[datetime] = None,
) -> bool:
    """
    True on the first check, on any material change, or when the last
    notified snapshot is older than the heartbeat interval.
    """
    if previous is None:
        return True

    changes = current.changes_since(previous, threshold_minutes)
    if changes:
        logger.debug(f"{current.designator} changed: {', '.join(changes)}")
        return True

    last_checked = previous.checked_at_dt
    if last_checked is None:
        return True
    now = now or datetime.now(timezone.utc)
    return now - last_checked > heartbeat


class FlightTracker:
    """
    Status checks for tracked flights.

    Batch cycles are single-flight like the price monitor: overlapping
    calls return skipped_reason "already_running".
    """

    def __init__(
        self,
        provider: FlightDataProvider,
        notifier: Notifier,
        session_factory: Callable[[], Session],
        delay_seconds: Optional[float] = None,
        segment_delay_seconds: Optional[float] = None,
        threshold_minutes: Optional[int] = None,
        heartbeat_hours: Optional[int] = None,
    ):
        settings = get_settings()
        self.provider = provider
        self.notifier = notifier
        self.session_factory = session_factory
        self.delay_seconds = settings.track_check_delay_seconds if delay_seconds is None else delay_seconds
        self.segment_delay_seconds = (
            settings.segment_check_delay_seconds if segment_delay_seconds is None else segment_delay_seconds
        )
        self.threshold_minutes = threshold_minutes or settings.status_change_threshold_minutes
        self.heartbeat = timedelta(hours=heartbeat_hours or settings.status_heartbeat_hours)
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    async def check_all_tracked_flights(self) -> dict:
        """
        Check every active track across all users.

        Returns summary: {checked, notified, errors}
        """
        if self._cycle_lock.locked():
            logger.info("Flight status cycle already running, skipping")
            return {"checked": 0, "notified": 0, "errors": 0, "skipped_reason": "already_running"}

        async with self._cycle_lock:
            db = self.session_factory()
            summary = {"checked": 0, "notified": 0, "errors": 0}
            try:
                repo = TrackingRepository(db)
                track_ids = [track.id for track in repo.get_all_active_tracks()]
                logger.info(f"Checking status for {len(track_ids)} tracked flights")

                for index, track_id in enumerate(track_ids):
                    try:
                        if await self._check_track(repo, track_id):
                            summary["notified"] += 1
                        summary["checked"] += 1
                    except Exception as e:
                        logger.error(f"Error checking flight track {track_id}: {e}")
                        db.rollback()
                        summary["errors"] += 1

                    if index < len(track_ids) - 1 and self.delay_seconds:
                        await asyncio.sleep(self.delay_seconds)
            finally:
                db.close()

        logger.info(f"Flight status check complete: {summary}")
        return summary

    async def check_single_flight_status(self, track_id: int) -> bool:
        """Check one track. Returns True if the owner was notified."""
        db = self.session_factory()
        try:
            return await self._check_track(TrackingRepository(db), track_id)
        finally:
            db.close()

    async def _check_track(self, repo: TrackingRepository, track_id: int) -> bool:
        track = repo.get_flight_track(track_id)
        if track is None or not track.is_active:
            logger.debug(f"Track {track_id} not found or inactive")
            return False

        current = await self.get_flight_status(
            track.carrier_code, track.flight_number, track.flight_date.isoformat()
        )
        if current is None:
            logger.info(f"No status information for {track.designator} on {track.flight_date}")
            return False

        previous = FlightStatus.from_dict(track.last_status)
        if should_notify(previous, current, self.threshold_minutes, self.heartbeat):
            await self.notifier.send_status_update(track, current)
            repo.update_track_status(track, current)
            return True

        repo.touch_track_check(track)
        return False

    async def get_flight_status(self, carrier_code: str, flight_number: str, date: str) -> Optional[FlightStatus]:
        """Provider status, or None when it has nothing or fails this time."""
        try:
            return await self.provider.fetch_status(carrier_code, flight_number, date)
        except ProviderError as e:
            logger.warning(f"Status lookup failed for {carrier_code}{flight_number} on {date}: {e}")
            return None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_flight_track(
        self,
        user_id: str,
        flight_date: str,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
        segments: Optional[List[Segment]] = None,
        carrier_code: Optional[str] = None,
        flight_number: Optional[str] = None,
    ) -> List[int]:
        """
        Track a flight, or every leg of a connecting itinerary.

        Legs are created in order and each one is status-checked before the
        next is created, so the user has an initial status for every leg
        when this returns. Returns the created track ids in segment order.
        """
        transport = self.notifier.transport

        if segments and len(segments) > 1:
            await transport.send_message(
                user_id,
                "✅ Flight tracking enabled for multi-segment journey!\n\n"
                f"🛫 From: {origin}\n"
                f"🛬 To: {destination}\n"
                f"📅 Date: {flight_date}\n"
                f"🔄 Number of segments: {len(segments)}\n\n"
                "I'll notify you of any schedule changes or updates for all flight segments! 🔔",
            )

            parent_route = new_parent_route(origin, destination)
            track_ids = []
            for index, segment in enumerate(segments):
                segment_date = flight_date if index == 0 else (segment.departure_date or flight_date)
                db = self.session_factory()
                try:
                    track = TrackingRepository(db).create_flight_track(
                        user_id,
                        segment.carrier_code,
                        segment.flight_number,
                        segment_date,
                        origin=segment.departure_airport,
                        destination=segment.arrival_airport,
                        is_segment=True,
                        segment_index=index,
                        parent_route=parent_route,
                    )
                    track_ids.append(track.id)
                finally:
                    db.close()

                await self._initial_check(track_ids[-1])

                if index < len(segments) - 1 and self.segment_delay_seconds:
                    await asyncio.sleep(self.segment_delay_seconds)

            return track_ids

        if segments:
            carrier_code = carrier_code or segments[0].carrier_code
            flight_number = flight_number or segments[0].flight_number
            origin = origin or segments[0].departure_airport
            destination = destination or segments[0].arrival_airport

        db = self.session_factory()
        try:
            track = TrackingRepository(db).create_flight_track(
                user_id, carrier_code, flight_number, flight_date, origin=origin, destination=destination
            )
            track_id = track.id
        finally:
            db.close()

        await transport.send_message(
            user_id,
            "✅ Flight tracking enabled!\n\n"
            f"✈️ Flight: {carrier_code}{flight_number}\n"
            f"📅 Date: {flight_date}\n"
            f"🛫 From: {origin or 'N/A'}\n"
            f"🛬 To: {destination or 'N/A'}\n\n"
            "I'll notify you of any schedule changes or updates for this flight! 🔔",
        )
        await self._initial_check(track_id)
        return [track_id]

    async def _initial_check(self, track_id: int):
        # Creation already succeeded; a failed first check is picked up by the next cycle
        try:
            await self.check_single_flight_status(track_id)
        except Exception as e:
            logger.error(f"Initial status check failed for track {track_id}: {e}")

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def cancel_flight_track(self, user_id: str, track_id: int) -> List[FlightTrack]:
        """Cancel a track (whole journey for segments); raises TrackingNotFound or OwnershipError."""
        db = self.session_factory()
        try:
            return TrackingRepository(db).cancel_flight_track(track_id, user_id)
        finally:
            db.close()

    async def show_user_flight_tracks(self, user_id: str) -> bool:
        transport = self.notifier.transport
        db = self.session_factory()
        try:
            tracks = TrackingRepository(db).get_user_tracks(user_id)
        finally:
            db.close()

        if not tracks:
            return await transport.send_message(
                user_id, '📭 You are not tracking any flights. Use the "Track Flights" button to start.'
            )

        journeys: "OrderedDict[str, List[FlightTrack]]" = OrderedDict()
        singles: List[FlightTrack] = []
        for track in tracks:
            if track.is_segment and track.parent_route:
                journeys.setdefault(track.parent_route, []).append(track)
            else:
                singles.append(track)

        lines = ["✈️ Your Tracked Flights:", ""]
        choices = []
        index = 1

        for legs in journeys.values():
            legs.sort(key=lambda t: t.segment_index)
            first = legs[0]
            origin, _, destination = first.journey_label.partition("-")
            lines.append(f"{index}. Multi-segment journey on {first.flight_date}")
            lines.append(f"   From: {origin or 'N/A'} To: {destination or 'N/A'}")
            lines.append(f"   Segments: {' → '.join(t.designator for t in legs)}")
            lines.append("")
            choices.append([Choice(
                f"❌ Cancel journey {origin} → {destination}",
                CallbackAction.of(CallbackKind.CANCEL_TRACK, first.id).encode(),
            )])
            index += 1

        for track in singles:
            lines.append(f"{index}. {track.designator} on {track.flight_date}")
            lines.append(f"   From: {track.origin or 'N/A'} To: {track.destination or 'N/A'}")
            lines.append("")
            choices.append([Choice(
                f"❌ Cancel {track.designator}",
                CallbackAction.of(CallbackKind.CANCEL_TRACK, track.id).encode(),
            )])
            index += 1

        return await transport.send_message(user_id, "\n".join(lines).rstrip(), choices=choices)
