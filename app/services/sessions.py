"""
Per-user conversation state.

In-memory only: a restart drops in-flight dialogs, which users recover from
by starting again.
"""
import asyncio
import enum
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class Step(str, enum.Enum):
    # Flight search
    SEARCH_ORIGIN = "search_origin"
    SELECT_ORIGIN_AIRPORT = "select_origin_airport"
    SEARCH_DESTINATION = "search_destination"
    SELECT_DESTINATION_AIRPORT = "select_destination_airport"
    SEARCH_DEPARTURE_DATE = "search_departure_date"
    SEARCH_RETURN_DATE = "search_return_date"

    # Flight tracking (route or flight number)
    TRACK_FLIGHT_METHOD = "track_flight_method"
    TRACK_FLIGHT_ORIGIN = "track_flight_origin"
    TRACK_FLIGHT_DESTINATION = "track_flight_destination"
    TRACK_FLIGHT_AIRLINE = "track_flight_airline"
    TRACK_FLIGHT_NUMBER = "track_flight_number"
    TRACK_FLIGHT_DATE = "track_flight_date"
    SELECT_FLIGHT_TO_TRACK = "select_flight_to_track"

    # Price alert
    ALERT_ORIGIN = "alert_origin"
    ALERT_DESTINATION = "alert_destination"
    ALERT_DEPARTURE_DATE = "alert_departure_date"
    ALERT_RETURN_DATE = "alert_return_date"
    ALERT_TARGET_PRICE = "alert_target_price"


@dataclass
class ConversationState:
    step: Step
    data: Dict[str, Any] = field(default_factory=dict)


class SessionStore(ABC):

    @abstractmethod
    def get(self, user_id: str) -> Optional[ConversationState]:
        pass

    @abstractmethod
    def set(self, user_id: str, state: ConversationState) -> None:
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        pass

    @abstractmethod
    def lock(self, user_id: str) -> asyncio.Lock:
        """Lock serialising all handling of one user's updates."""


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._states: Dict[str, ConversationState] = {}
        # Locks live only while a handler holds one
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> Optional[ConversationState]:
        return self._states.get(str(user_id))

    def set(self, user_id: str, state: ConversationState) -> None:
        self._states[str(user_id)] = state

    def delete(self, user_id: str) -> None:
        self._states.pop(str(user_id), None)

    def lock(self, user_id: str) -> asyncio.Lock:
        key = str(user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._states)
