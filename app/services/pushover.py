import logging
from typing import Any, Dict, Optional
import httpx

from app.core.constants import PUSHOVER_API_URL
from app.services.config_manager import Settings
from app.services.prometheus_metrics import NOTIFICATIONS
from app.services.timezone_utils import format_brl, format_local

logger = logging.getLogger(__name__)


class PushoverNotifier:
    """Sale alerts for the shop owner's phone."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.app_token = settings.PUSHOVER_APP_TOKEN
        self.user_key = settings.PUSHOVER_USER_KEY
        self.client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    @property
    def is_configured(self) -> bool:
        return bool(self.app_token and self.user_key)

    async def _send(self, title: str, message: str, priority: int = 0, sound: str = "pushover") -> Dict[str, Any]:
        response = await self.client.post(
            PUSHOVER_API_URL,
            data={
                "token": self.app_token,
                "user": self.user_key,
                "title": title,
                "message": message,
                "priority": priority,
                "sound": sound,
            },
        )
        response.raise_for_status()
        return response.json()

    async def send_sale_approved(self, payment: Dict[str, Any]) -> bool:
        """Alert on an approved payment. Returns False when not sent."""
        if not self.is_configured:
            logger.info("Pushover not configured, skipping sale alert")
            return False

        payment_id = payment.get("id") or payment.get("payment_id") or "-"
        message = (
            f"💰 Venda aprovada!\n"
            f"Valor: {format_brl(payment.get('transaction_amount'))}\n"
            f"🕓 {format_local()}\n"
            f"ID: {payment_id}"
        )
        try:
            await self._send("Venda Aprovada!", message, priority=1, sound="cash")
        except httpx.HTTPError as e:
            logger.error(f"Pushover alert for payment {payment_id} failed: {e}")
            NOTIFICATIONS.labels(channel="pushover", result="failed").inc()
            return False

        logger.info(f"Pushover sale alert sent (payment {payment_id})")
        NOTIFICATIONS.labels(channel="pushover", result="sent").inc()
        return True

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
