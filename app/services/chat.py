"""Chat transport capability used by the conversation flows and notifiers."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class Choice:
    """An inline button: either a callback action or an external URL."""
    label: str
    action: Optional[str] = None
    url: Optional[str] = None


ChoiceRows = List[List[Choice]]

MAIN_MENU: List[List[str]] = [
    ["🔍 Search Flights"],
    ["💰 My Price Alerts", "✈️ My Tracked Flights"],
    ["🛫 Track Flights", "❓ Help"],
    ["⭐ Premium", "🔗 Share"],
]

TRACK_METHOD_MENU: List[List[str]] = [
    ["Search by Route", "Search by Flight Number"],
    ["🔙 Back to Main Menu"],
]


class ChatTransport(ABC):
    """
    Fire-and-forget message delivery.

    Implementations log delivery failures and return False instead of raising,
    so decision logic never depends on whether a message arrived.
    """

    @abstractmethod
    async def send_message(
        self,
        user_id: str,
        text: str,
        choices: Optional[ChoiceRows] = None,
        keyboard: Optional[List[List[str]]] = None,
    ) -> bool:
        pass

    @abstractmethod
    async def answer_callback(
        self,
        callback_id: str,
        text: Optional[str] = None,
        show_alert: bool = False,
    ) -> bool:
        pass

    async def close(self):
        pass
