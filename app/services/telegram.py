"""
Telegram Bot API transport.

API docs: https://core.telegram.org/bots/api
"""
import logging
from typing import List, Optional

import httpx

from app.config import get_settings
from app.services.chat import ChatTransport, ChoiceRows

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"


class TelegramClient(ChatTransport):

    def __init__(self, token: Optional[str] = None):
        self.token = token if token is not None else get_settings().telegram_bot_token
        self._client: Optional[httpx.AsyncClient] = None

    def is_configured(self) -> bool:
        return bool(self.token)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=f"{API_BASE}/bot{self.token}", timeout=15.0)
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _call(self, method: str, payload: dict) -> bool:
        if not self.is_configured():
            logger.warning(f"Telegram token not configured, dropping {method}")
            return False

        try:
            client = await self._get_client()
            response = await client.post(f"/{method}", json=payload)
        except httpx.RequestError as e:
            logger.warning(f"Telegram {method} request failed: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"Telegram {method} returned {response.status_code}: {response.text[:200]}")
            return False
        return True

    @staticmethod
    def _reply_markup(choices: Optional[ChoiceRows], keyboard: Optional[List[List[str]]]) -> Optional[dict]:
        if choices:
            rows = []
            for row in choices:
                buttons = []
                for choice in row:
                    button = {"text": choice.label}
                    if choice.url:
                        button["url"] = choice.url
                    else:
                        button["callback_data"] = choice.action
                    buttons.append(button)
                rows.append(buttons)
            return {"inline_keyboard": rows}
        if keyboard:
            return {
                "keyboard": [[{"text": label} for label in row] for row in keyboard],
                "resize_keyboard": True,
                "is_persistent": True,
            }
        return None

    async def send_message(
        self,
        user_id: str,
        text: str,
        choices: Optional[ChoiceRows] = None,
        keyboard: Optional[List[List[str]]] = None,
    ) -> bool:
        payload = {"chat_id": user_id, "text": text, "disable_web_page_preview": True}
        markup = self._reply_markup(choices, keyboard)
        if markup:
            payload["reply_markup"] = markup
        return await self._call("sendMessage", payload)

    async def answer_callback(
        self,
        callback_id: str,
        text: Optional[str] = None,
        show_alert: bool = False,
    ) -> bool:
        payload = {"callback_query_id": callback_id, "show_alert": show_alert}
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        payload = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        ok = await self._call("setWebhook", payload)
        if ok:
            logger.info(f"Telegram webhook registered at {url}")
        return ok
