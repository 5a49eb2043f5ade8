"""
Inline button payloads.

Every button is built from a CallbackAction and every incoming callback is
decoded back into one, so routing matches on the kind instead of sniffing
string prefixes. Telegram limits callback_data to 64 bytes.
"""
import enum
from dataclasses import dataclass
from typing import Tuple

SEPARATOR = ":"
MAX_PAYLOAD_BYTES = 64


class CallbackKind(str, enum.Enum):
    SELECT_ORIGIN = "select_origin"
    SELECT_DESTINATION = "select_destination"
    SELECT_FLIGHT = "select_flight"
    TRACK_ROUTE = "track_route"
    ALERT_HISTORY = "alert_history"
    CANCEL_ALERT = "cancel_alert"
    CANCEL_TRACK = "cancel_track"
    SEARCH_NEW = "search_new"
    COPY_SHARE_LINK = "copy_share_link"


# kind -> (min args, max args)
ARITY = {
    CallbackKind.SELECT_ORIGIN: (1, 1),
    CallbackKind.SELECT_DESTINATION: (1, 1),
    CallbackKind.SELECT_FLIGHT: (1, 1),
    CallbackKind.TRACK_ROUTE: (3, 4),  # origin, destination, departure[, return]
    CallbackKind.ALERT_HISTORY: (1, 1),
    CallbackKind.CANCEL_ALERT: (1, 1),
    CallbackKind.CANCEL_TRACK: (1, 1),
    CallbackKind.SEARCH_NEW: (0, 0),
    CallbackKind.COPY_SHARE_LINK: (0, 0),
}

# Need the user's in-flight conversation to make sense
STATEFUL_KINDS = {
    CallbackKind.SELECT_ORIGIN,
    CallbackKind.SELECT_DESTINATION,
    CallbackKind.SELECT_FLIGHT,
}

# Args that must parse as non-negative integers
_INT_ARG_KINDS = {
    CallbackKind.SELECT_ORIGIN,
    CallbackKind.SELECT_DESTINATION,
    CallbackKind.SELECT_FLIGHT,
    CallbackKind.ALERT_HISTORY,
    CallbackKind.CANCEL_ALERT,
    CallbackKind.CANCEL_TRACK,
}


def _validate(kind: CallbackKind, args: Tuple[str, ...]):
    low, high = ARITY[kind]
    if not low <= len(args) <= high:
        raise ValueError(f"{kind.value} takes {low}-{high} args, got {len(args)}")
    for arg in args:
        if not arg or SEPARATOR in arg:
            raise ValueError(f"Invalid argument {arg!r} for {kind.value}")
    if kind in _INT_ARG_KINDS and not args[0].isdigit():
        raise ValueError(f"{kind.value} expects a numeric argument, got {args[0]!r}")


@dataclass(frozen=True)
class CallbackAction:
    kind: CallbackKind
    args: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        _validate(self.kind, self.args)

    @classmethod
    def of(cls, kind: CallbackKind, *args) -> "CallbackAction":
        return cls(kind, tuple(str(a) for a in args if a is not None))

    @property
    def is_stateful(self) -> bool:
        return self.kind in STATEFUL_KINDS

    def int_arg(self, index: int = 0) -> int:
        return int(self.args[index])

    def encode(self) -> str:
        payload = SEPARATOR.join((self.kind.value, *self.args))
        if len(payload.encode()) > MAX_PAYLOAD_BYTES:
            raise ValueError(f"Callback payload too long: {payload}")
        return payload

    @classmethod
    def decode(cls, payload: str) -> "CallbackAction":
        """Parse a payload; raises ValueError for unknown kinds or bad arguments."""
        if not payload:
            raise ValueError("Empty callback payload")
        kind_value, *args = payload.split(SEPARATOR)
        try:
            kind = CallbackKind(kind_value)
        except ValueError:
            raise ValueError(f"Unknown callback kind {kind_value!r}") from None
        return cls(kind, tuple(args))
