from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from app.core.constants import DEFAULT_LEAD_NAME


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


# Columns written by a sheet sync; payment and reserved columns are left to the store.
SYNC_FIELDS = (
    "uid",
    "name",
    "email",
    "whatsapp",
    "registered_at",
    "started_test",
    "completed_test",
)


class Lead(BaseModel):
    """One form submission and its payment/completion status."""
    uid: str = Field(..., description="Form submission id, unique")
    name: str = Field(DEFAULT_LEAD_NAME, description="Respondent's name")
    email: str = Field("", description="Respondent's email, may be empty")
    whatsapp: str = Field("", description="Respondent's WhatsApp number, may be empty")
    registered_at: datetime = Field(..., description="When the form was submitted")
    started_test: bool = True
    completed_test: bool = False
    payment_status: PaymentStatus = PaymentStatus.PENDING
    paid_at: Optional[datetime] = None
    amount_paid: float = 0

    # Reserved for later use, never set by sync or reconciliation
    result_sent: bool = False
    result_viewed: bool = False
    reminder_count: int = 0

    def to_sync_record(self) -> Dict[str, Any]:
        """Fields written by a sheet sync, JSON-ready."""
        return self.model_dump(mode="json", include=set(SYNC_FIELDS))


def payment_update(amount: float, paid_at: datetime) -> Dict[str, Any]:
    """Fields written when a payment is approved."""
    return {
        "payment_status": PaymentStatus.APPROVED.value,
        "paid_at": paid_at.isoformat(),
        "amount_paid": amount,
    }
