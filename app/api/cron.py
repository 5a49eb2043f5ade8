import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from app.config import get_settings
from app.container import get_services

logger = logging.getLogger(__name__)
router = APIRouter()


class CycleSummary(BaseModel):
    checked: int = 0
    notified: int = 0
    errors: int = 0
    expired: Optional[int] = None
    skipped_reason: Optional[str] = None


def verify_cron_secret(authorization: Optional[str]):
    secret = get_settings().cron_secret
    if not secret or authorization != f"Bearer {secret}":
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("/check-prices", response_model=CycleSummary, response_model_exclude_none=True)
async def check_prices(authorization: Optional[str] = Header(None)):
    """Run one price-alert cycle for an external scheduler."""
    verify_cron_secret(authorization)
    try:
        return await get_services().price_monitor.check_all_alerts()
    except Exception as e:
        logger.error(f"Cron price check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Price check failed: {e}")


@router.get("/check-flights", response_model=CycleSummary, response_model_exclude_none=True)
async def check_flights(authorization: Optional[str] = Header(None)):
    """Run one flight-status cycle for an external scheduler."""
    verify_cron_secret(authorization)
    try:
        return await get_services().flight_tracker.check_all_tracked_flights()
    except Exception as e:
        logger.error(f"Cron flight check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Flight check failed: {e}")
