import logging
import re
from typing import Optional
from urllib.parse import quote
import httpx

from app.core.constants import DEFAULT_COUNTRY_CODE
from app.models.lead import Lead
from app.services.config_manager import Settings
from app.services.prometheus_metrics import NOTIFICATIONS

logger = logging.getLogger(__name__)

RESULT_READY_TEMPLATE = (
    "Olá, {name}!🤩\n\n"
    "✨Tenho novidades...\n"
    "🔎O resultado do seu Teste de Prosperidade já está disponível!\n\n"
    "Está animado(a) para ver o que ele revela sobre o seu momento atual "
    "e os próximos passos da sua jornada?\n\n"
    "👉 Acesse seu resultado aqui:\n{link}\n\n"
    "Depois me conta o que achou!"
)


def normalize_phone(raw: Optional[str]) -> str:
    """Digits only, with the Brazilian country code added when missing."""
    digits = re.sub(r"\D", "", str(raw or ""))
    if not digits:
        return ""
    return digits if digits.startswith(DEFAULT_COUNTRY_CODE) else f"{DEFAULT_COUNTRY_CODE}{digits}"


class WhatsAppNotifier:
    """Sends WhatsApp messages through an Evolution API instance."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.enabled = settings.whatsapp_enabled and bool(settings.RESULT_PAGE_URL)
        self.instance = settings.EVOLUTION_INSTANCE or ""
        self.result_page_url = settings.RESULT_PAGE_URL or ""
        self.client = client or httpx.AsyncClient(
            base_url=settings.EVOLUTION_URL or "",
            headers={
                "apikey": settings.EVOLUTION_API_KEY or "",
                "Content-Type": "application/json"
            },
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def result_link(self, uid: str) -> str:
        return f"{self.result_page_url}?uid={quote(uid)}"

    async def send_text(self, number: str, text: str) -> bool:
        try:
            response = await self.client.post(
                f"/message/sendText/{quote(self.instance, safe='')}",
                json={"number": number, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp send to {number} failed: {e}")
            NOTIFICATIONS.labels(channel="whatsapp", result="failed").inc()
            return False

        NOTIFICATIONS.labels(channel="whatsapp", result="sent").inc()
        return True

    async def send_result_ready(self, lead: Lead) -> bool:
        """Tell the lead their result is available."""
        if not self.enabled:
            logger.warning("WhatsApp not configured, skipping notification for lead %s", lead.uid)
            return False

        number = normalize_phone(lead.whatsapp)
        if not number:
            logger.warning("Lead %s has no WhatsApp number, skipping notification", lead.uid)
            NOTIFICATIONS.labels(channel="whatsapp", result="skipped").inc()
            return False

        text = RESULT_READY_TEMPLATE.format(name=lead.name, link=self.result_link(lead.uid))
        sent = await self.send_text(number, text)
        if sent:
            logger.info(f"WhatsApp sent to {lead.name} ({number})")
        return sent

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
