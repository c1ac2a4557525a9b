from __future__ import annotations
import logging
from typing import Any, Dict, List, Sequence

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from .credentials import LineCredentials
from .exceptions import BatchSendError
from .messages import Message

logger = logging.getLogger(__name__)


class PushClient:
    def send_batch(self, auth: LineCredentials, destination_ids: Sequence[str], messages: List[Message]) -> None:
        """Deliver `messages` to every id in one call; raise BatchSendError on failure."""
        raise NotImplementedError

    def get_bot_info(self, auth: LineCredentials) -> Dict[str, Any]:
        raise NotImplementedError


# --- Dummy client: accepts everything, handy for dev without a LINE channel ---
class DummyPushClient(PushClient):
    def send_batch(self, auth, destination_ids, messages):
        logger.info("DUMMY multicast: %d destinations, %d messages", len(destination_ids), len(messages))

    def get_bot_info(self, auth):
        return {"displayName": "Dummy bot", "userId": "U-dummy", "pictureUrl": None}


# --- LINE Messaging API ---
class LinePushClient(PushClient):
    def __init__(self, base_url: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or getattr(settings, "LINE_API_BASE_URL", "https://api.line.me")).rstrip("/")
        self.timeout = timeout or getattr(settings, "LINE_API_TIMEOUT", 20)
        self.http = session or requests.Session()

    def _headers(self, auth: LineCredentials):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {auth.access_token}",
        }

    @staticmethod
    def _error_reason(resp, fallback: str) -> str:
        try:
            data = resp.json()
        except ValueError:
            data = {}
        msg = data.get("message") if isinstance(data, dict) else None
        return f"{msg or fallback} (HTTP {resp.status_code})"

    def send_batch(self, auth, destination_ids, messages):
        if not destination_ids:
            return
        body = {
            "to": list(destination_ids),
            "messages": [m.to_payload() for m in messages],
        }
        try:
            r = self.http.post(
                f"{self.base_url}/v2/bot/message/multicast",
                json=body, headers=self._headers(auth), timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BatchSendError(f"LINE multicast request failed: {e}") from e
        if not r.ok:
            raise BatchSendError(self._error_reason(r, "LINE multicast failed"), status_code=r.status_code)

    def get_bot_info(self, auth):
        try:
            r = self.http.get(f"{self.base_url}/v2/bot/info", headers=self._headers(auth), timeout=self.timeout)
        except requests.RequestException as e:
            raise BatchSendError(f"LINE bot info request failed: {e}") from e
        if not r.ok:
            raise BatchSendError(self._error_reason(r, "LINE credentials are invalid or expired"), status_code=r.status_code)
        return r.json()


def get_push_client() -> PushClient:
    dotted = getattr(settings, "BROADCAST_PUSH_CLIENT", "broadcasts.clients.LinePushClient")
    return import_string(dotted)()
