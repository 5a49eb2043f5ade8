"""
When is a price movement worth telling the user about?

Pure functions only; the price monitor owns persistence and delivery.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.config import Settings, get_settings


class AlertReason(str, enum.Enum):
    PRICE_DROP = "price_drop"
    PRICE_INCREASE = "price_increase"
    TARGET_REACHED = "target_reached"
    SIGNIFICANT_DROP = "significant_drop"
    FIRST_CHECK = "first_check"


@dataclass(frozen=True)
class DropPolicy:
    """A drop is significant when it clears BOTH the absolute and relative bar."""
    min_amount: Decimal = Decimal("50")
    min_percent: Decimal = Decimal("20")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DropPolicy":
        settings = settings or get_settings()
        return cls(
            min_amount=Decimal(str(settings.significant_drop_amount)),
            min_percent=Decimal(str(settings.significant_drop_percent)),
        )

    def is_significant(self, previous: Decimal, new: Decimal) -> bool:
        if previous <= 0 or new >= previous:
            return False
        drop = previous - new
        percent = drop / previous * 100
        return drop >= self.min_amount and percent >= self.min_percent


def decide_notification(
    target: Decimal,
    new: Decimal,
    previous: Optional[Decimal],
    policy: DropPolicy = DropPolicy(),
) -> Optional[AlertReason]:
    """
    First matching rule wins:

    1. target of 0 means "any change": notify on any move from the previous price
    2. new price at or below target
    3. significant drop from the previous price
    4. first observation
    """
    target = Decimal(str(target or 0))
    new = Decimal(str(new))
    previous = Decimal(str(previous)) if previous is not None else None

    if target == 0 and previous is not None and new != previous:
        return AlertReason.PRICE_DROP if new < previous else AlertReason.PRICE_INCREASE

    if new <= target:
        return AlertReason.TARGET_REACHED

    if previous is not None and policy.is_significant(previous, new):
        return AlertReason.SIGNIFICANT_DROP

    if previous is None:
        return AlertReason.FIRST_CHECK

    return None
