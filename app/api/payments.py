from typing import Any, Dict, Optional
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from app.api.dependencies import Services, get_services
from app.core.constants import PAYMENT_APPROVED
from app.core.exceptions import PaymentGatewayError
from app.models.lead import Lead
from app.services.payment_gateway import verify_shared_secret, verify_webhook_signature
from app.services.payment_reconciliation import ReconciliationOutcome
from app.services.prometheus_metrics import WEBHOOK_EVENTS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])

# Fields of a gateway payment echoed back to the frontend
PAYMENT_FIELDS = (
    "id",
    "status",
    "status_detail",
    "external_reference",
    "transaction_amount",
    "payment_method_id",
    "date_approved",
    "point_of_interaction",
)


class Payer(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    identification: Optional[Dict[str, Any]] = None


class ProcessPaymentRequest(BaseModel):
    uid: str = Field(..., min_length=1, description="Form submission id the payment unlocks")
    transaction_amount: float = Field(..., gt=0)
    payment_method_id: str
    payer: Payer
    token: Optional[str] = None
    installments: int = 1
    issuer_id: Optional[str] = None
    description: Optional[str] = None


class PaymentApproved(BaseModel):
    uid: str = Field(..., min_length=1)
    transaction_amount: float = Field(..., gt=0)


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=255)


def _summary(payment: Dict[str, Any]) -> Dict[str, Any]:
    return {key: payment.get(key) for key in PAYMENT_FIELDS if key in payment}


def _gateway_http_error(e: PaymentGatewayError) -> HTTPException:
    if e.status_code == 503:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif e.status_code == 404:
        code = status.HTTP_404_NOT_FOUND
    elif e.status_code and 400 <= e.status_code < 500:
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail={"error": str(e), "details": e.details})


async def notify_approval(services: Services, uid: str, payment: Dict[str, Any]) -> None:
    """Send the WhatsApp result message and the sale alert. Failures are only logged."""
    try:
        row = await services.store.get_by_uid(uid)
        if row:
            await services.whatsapp.send_result_ready(Lead.model_validate(row))
        else:
            logger.warning("Lead %s vanished before notification", uid)
    except Exception as e:
        logger.error("WhatsApp notification for lead %s failed: %s", uid, e)

    await services.pushover.send_sale_approved(payment)


async def handle_payment_approved(services: Services, uid: Optional[str], amount: float, payment: Dict[str, Any]) -> ReconciliationOutcome:
    """Reconcile an approved payment and notify on the first approval only."""
    if not uid:
        logger.error("Approved payment %s has no external_reference, cannot reconcile", payment.get("id"))
        return ReconciliationOutcome.FAILED

    outcome = await services.reconciler.reconcile(uid, amount)
    if outcome == ReconciliationOutcome.APPROVED:
        await notify_approval(services, uid, payment)
    return outcome


@router.post("/process_payment", status_code=status.HTTP_201_CREATED)
async def process_payment(
    request: Request,
    body: ProcessPaymentRequest,
    services: Services = Depends(get_services)
):
    """Create a payment at the gateway for a lead."""
    settings = services.settings
    payload: Dict[str, Any] = {
        "transaction_amount": body.transaction_amount,
        "description": body.description or settings.PAYMENT_DESCRIPTION,
        "payment_method_id": body.payment_method_id,
        "installments": body.installments,
        "payer": body.payer.model_dump(exclude_none=True),
        "external_reference": body.uid,
        "metadata": {"uid": body.uid},
    }
    if body.token:
        payload["token"] = body.token
    if body.issuer_id:
        payload["issuer_id"] = body.issuer_id
    if settings.BASE_URL:
        payload["notification_url"] = f"{settings.BASE_URL.rstrip('/')}/api/webhook"

    try:
        payment = await services.gateway.create_payment(
            payload, idempotency_key=request.headers.get("X-Idempotency-Key")
        )
    except PaymentGatewayError as e:
        raise _gateway_http_error(e)

    if payment.get("status") == PAYMENT_APPROVED:
        await handle_payment_approved(services, body.uid, body.transaction_amount, payment)

    return _summary(payment)


@router.post("/webhook", status_code=status.HTTP_200_OK)
async def payment_webhook(request: Request, services: Services = Depends(get_services)):
    """Handle payment notifications from the gateway. Always acknowledged once authenticated."""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    params = request.query_params
    event_type = body.get("type") or params.get("type") or params.get("topic") or "unknown"
    data_id = str((body.get("data") or {}).get("id") or params.get("data.id") or params.get("id") or "")
    WEBHOOK_EVENTS.labels(event_type=event_type).inc()
    logger.info("Payment webhook received: type=%s id=%s", event_type, data_id)

    secret = services.settings.MERCADOPAGO_WEBHOOK_SECRET
    if secret and not verify_webhook_signature(
        secret,
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        params.get("data.id") or data_id,
    ):
        logger.warning("Payment webhook signature verification failed, rejecting request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    if event_type != "payment" or not data_id:
        return {"received": True, "processed": False}

    try:
        payment = await services.gateway.get_payment(data_id)
        if payment.get("status") != PAYMENT_APPROVED:
            logger.info("Payment %s status is %s, nothing to reconcile", data_id, payment.get("status"))
            return {"received": True, "processed": False, "status": payment.get("status")}

        outcome = await handle_payment_approved(
            services,
            payment.get("external_reference"),
            payment.get("transaction_amount") or 0,
            payment,
        )
        return {"received": True, "processed": outcome != ReconciliationOutcome.FAILED, "outcome": outcome.value}
    except Exception as e:
        logger.error("Payment webhook processing for %s failed: %s", data_id, e, exc_info=True)
        return {"received": True, "processed": False}


@router.post("/payment-approved", status_code=status.HTTP_200_OK)
async def payment_approved(request: Request, body: PaymentApproved, services: Services = Depends(get_services)):
    """Approval signal carrying a submission id and the paid amount. Needs X-Approval-Secret once a secret is set."""
    secret = services.settings.approval_secret
    if secret and not verify_shared_secret(secret, request.headers.get("x-approval-secret")):
        logger.warning("Rejected unauthenticated payment approval for lead %s", body.uid)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid approval secret")

    payment = {"payment_id": body.uid, "transaction_amount": body.transaction_amount}
    outcome = await handle_payment_approved(services, body.uid, body.transaction_amount, payment)
    return {"success": outcome != ReconciliationOutcome.FAILED, "outcome": outcome.value}


@router.get("/payment/{payment_id}")
async def get_payment(payment_id: str, services: Services = Depends(get_services)):
    """Look up a payment at the gateway."""
    try:
        payment = await services.gateway.get_payment(payment_id)
    except PaymentGatewayError as e:
        raise _gateway_http_error(e)
    return _summary(payment)


@router.post("/refund/{payment_id}")
async def refund_payment(
    payment_id: str,
    body: Optional[RefundRequest] = None,
    services: Services = Depends(get_services)
):
    """Refund a payment in full or in part."""
    amount = body.amount if body else None
    logger.info(
        "Refund requested for payment %s (amount=%s, reason=%s)",
        payment_id, amount if amount is not None else "full", (body.reason if body else None) or "-",
    )
    try:
        refund = await services.gateway.refund_payment(payment_id, amount)
    except PaymentGatewayError as e:
        raise _gateway_http_error(e)
    return {"success": True, "refund": refund}


@router.get("/mp-health")
async def gateway_health(services: Services = Depends(get_services)):
    settings = services.settings
    return {
        "mercadopago": "OK" if services.gateway.is_configured else "NOT_CONFIGURED",
        "access_token_configured": bool(settings.MERCADOPAGO_ACCESS_TOKEN),
        "public_key_configured": bool(settings.MERCADOPAGO_PUBLIC_KEY),
        "webhook_secret_configured": bool(settings.MERCADOPAGO_WEBHOOK_SECRET),
    }
