from typing import Optional, Dict, Any
import hashlib
import hmac
import logging
import uuid
import httpx

from app.core.exceptions import PaymentGatewayError
from app.services.config_manager import Settings
from app.services.prometheus_metrics import GATEWAY_ERRORS

logger = logging.getLogger(__name__)


def verify_webhook_signature(
    secret: str,
    x_signature: Optional[str],
    x_request_id: Optional[str],
    data_id: Optional[str],
) -> bool:
    """Check Mercado Pago's x-signature header ("ts=...,v1=...") against the shared secret."""
    if not x_signature:
        return False

    parts: Dict[str, str] = {}
    for chunk in x_signature.split(","):
        key, _, value = chunk.strip().partition("=")
        parts[key.strip()] = value.strip()

    ts, received = parts.get("ts"), parts.get("v1")
    if not ts or not received:
        return False

    manifest = ""
    if data_id:
        manifest += f"id:{data_id.lower() if data_id.isalnum() else data_id};"
    if x_request_id:
        manifest += f"request-id:{x_request_id};"
    manifest += f"ts:{ts};"

    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


def verify_shared_secret(secret: str, provided: Optional[str]) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(secret.encode(), provided.encode())


class MercadoPagoClient:
    """Thin async client for the Mercado Pago payments API."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.access_token = settings.MERCADOPAGO_ACCESS_TOKEN
        self.client = client or httpx.AsyncClient(
            base_url=settings.MERCADOPAGO_BASE_URL,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json"
            },
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        if not self.is_configured:
            raise PaymentGatewayError("Mercado Pago access token not configured", status_code=503)

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            GATEWAY_ERRORS.labels(operation=operation).inc()
            logger.error(f"Mercado Pago {operation} failed: {e}")
            raise PaymentGatewayError(f"Mercado Pago unreachable: {e}", status_code=502) from e

        if response.is_error:
            GATEWAY_ERRORS.labels(operation=operation).inc()
            try:
                details = response.json()
            except ValueError:
                details = {"body": response.text}
            logger.error(f"Mercado Pago {operation} returned {response.status_code}: {details}")
            raise PaymentGatewayError(
                f"Mercado Pago {operation} failed with status {response.status_code}",
                status_code=response.status_code,
                details=details,
            )
        return response.json()

    async def create_payment(self, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """Create a payment. The idempotency key makes client retries safe."""
        headers = {"X-Idempotency-Key": idempotency_key or str(uuid.uuid4())}
        result = await self._request("create_payment", "POST", "/v1/payments", json=payload, headers=headers)
        logger.info("Payment %s created with status %s", result.get("id"), result.get("status"))
        return result

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request("get_payment", "GET", f"/v1/payments/{payment_id}")

    async def refund_payment(self, payment_id: str, amount: Optional[float] = None) -> Dict[str, Any]:
        """Refund a payment in full, or partially when an amount is given."""
        body = {"amount": amount} if amount is not None else {}
        headers = {"X-Idempotency-Key": str(uuid.uuid4())}
        result = await self._request(
            "refund_payment", "POST", f"/v1/payments/{payment_id}/refunds", json=body, headers=headers
        )
        logger.info("Refund %s created for payment %s", result.get("id"), payment_id)
        return result

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
