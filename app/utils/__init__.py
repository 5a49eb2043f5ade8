"""Utility modules for AeroWizard."""

from app.utils.dates import parse_date, is_valid_travel_date, is_valid_return_date, is_one_way
from app.utils.links import build_booking_url, build_share_link, is_http_url

__all__ = [
    "parse_date",
    "is_valid_travel_date",
    "is_valid_return_date",
    "is_one_way",
    "build_booking_url",
    "build_share_link",
    "is_http_url",
]
