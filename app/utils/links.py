"""Outbound link builders shared by search results, alerts and notifications."""

from typing import Optional
from urllib.parse import quote

SKYSCANNER_BASE = "https://www.skyscanner.com/transport/flights"

_SKYSCANNER_QUERY = (
    "adults=1&children=0&adultsv2=1&childrenv2=&infants=0&cabinclass=economy"
    "&rtn={rtn}&preferdirects=false&outboundaltsenabled=false&inboundaltsenabled=false"
)


def build_booking_url(
    origin: str,
    destination: str,
    departure_date: str,
    return_date: Optional[str] = None,
) -> str:
    """
    Build a Skyscanner deep link for a route.

    Dates are ISO strings; Skyscanner wants them as YYYYMMDD path segments.
    One-way links carry rtn=0, return links add the return segment and rtn=1.
    """
    path = f"{SKYSCANNER_BASE}/{origin.upper()}/{destination.upper()}/{departure_date.replace('-', '')}"
    if return_date:
        path += f"/{return_date.replace('-', '')}"
        return f"{path}/?{_SKYSCANNER_QUERY.format(rtn=1)}"
    return f"{path}/?{_SKYSCANNER_QUERY.format(rtn=0)}"


def build_share_link(bot_username: str) -> str:
    return f"https://t.me/{bot_username}"


def build_telegram_share_url(bot_username: str, text: str = "Check out this awesome Flight Price Tracker bot!") -> str:
    link = build_share_link(bot_username)
    return f"https://t.me/share/url?url={quote(link, safe='')}&text={quote(text, safe='')}"


def is_http_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))
