import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Header, HTTPException

from app.config import get_settings
from app.container import get_services

logger = logging.getLogger(__name__)
router = APIRouter()


async def process_update(update: Dict[str, Any]):
    try:
        await get_services().bot.handle_update(update)
    except Exception:
        logger.exception(f"Failed to process Telegram update {update.get('update_id')}")


@router.post("/webhook")
async def telegram_webhook(
    background_tasks: BackgroundTasks,
    update: Dict[str, Any] = Body(...),
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
) -> Dict[str, bool]:
    """Receive one Telegram update; handling happens after the response."""
    secret = get_settings().telegram_webhook_secret
    if secret and x_telegram_bot_api_secret_token != secret:
        logger.warning("Rejected webhook call with a bad secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    background_tasks.add_task(process_update, update)
    return {"ok": True}
