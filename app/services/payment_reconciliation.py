"""
Marks leads as paid when the payment gateway approves a payment.

The work is split in two phases. ensure_record_exists() looks the lead up and,
when it is missing, runs one full sheet sync to pull it in. apply_payment()
then writes the payment fields with a conditional update that only matches a
lead still in 'pending', and raises LeadNotFoundError if no row was updated.
A lead that is still missing after the sync is reported as a failure instead
of passing for a successful update, and of two overlapping approvals for the
same lead only one ends up APPROVED.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from app.core.exceptions import LeadNotFoundError
from app.jobs.sheet_sync import LeadSyncService
from app.models.lead import PaymentStatus, payment_update
from app.services.lead_store import LeadStore
from app.services.prometheus_metrics import RECONCILIATIONS
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    APPROVED = "approved"
    ALREADY_APPROVED = "already_approved"
    FAILED = "failed"


def _is_approved(row: Optional[Dict[str, Any]]) -> bool:
    return bool(row) and row.get("payment_status") == PaymentStatus.APPROVED.value


class PaymentReconciler:
    def __init__(
        self,
        store: LeadStore,
        sync_service: LeadSyncService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.sync_service = sync_service
        self.clock = clock

    async def ensure_record_exists(self, uid: str) -> bool:
        """Return True if the lead exists, syncing the sheet once when it does not."""
        return await self._find_or_sync(uid) is not None

    async def apply_payment(self, uid: str, amount: float) -> Dict[str, Any]:
        """Mark a pending lead approved. Raises LeadNotFoundError when no row matched."""
        rows = await self.store.update_by_uid(uid, payment_update(amount, self.clock()), pending_only=True)
        if not rows:
            raise LeadNotFoundError(uid)
        return rows[0]

    async def reconcile(self, uid: str, amount: float) -> ReconciliationOutcome:
        """Run both phases, turning every error into ReconciliationOutcome.FAILED."""
        try:
            existing = await self._find_or_sync(uid)
            if existing is None:
                raise LeadNotFoundError(uid)
            if _is_approved(existing):
                logger.info("Lead %s already approved, skipping update", uid)
                outcome = ReconciliationOutcome.ALREADY_APPROVED
            else:
                outcome = await self._approve(uid, amount)
        except Exception as e:
            logger.error("Payment reconciliation for lead %s failed: %s", uid, e, exc_info=True)
            outcome = ReconciliationOutcome.FAILED

        RECONCILIATIONS.labels(outcome=outcome.value).inc()
        return outcome

    async def _approve(self, uid: str, amount: float) -> ReconciliationOutcome:
        try:
            await self.apply_payment(uid, amount)
        except LeadNotFoundError:
            # the conditional update lost to a concurrent approval
            if _is_approved(await self.store.get_by_uid(uid)):
                logger.info("Lead %s was approved concurrently, skipping notification", uid)
                return ReconciliationOutcome.ALREADY_APPROVED
            raise
        logger.info("Lead %s marked as paid (amount %s)", uid, amount)
        return ReconciliationOutcome.APPROVED

    async def _find_or_sync(self, uid: str) -> Optional[Dict[str, Any]]:
        row = await self.store.get_by_uid(uid)
        if row:
            return row
        logger.info("Lead %s not in store, running a full sheet sync", uid)
        await self.sync_service.sync_all()
        return await self.store.get_by_uid(uid)

    async def mark_paid(self, uid: str, amount: float) -> bool:
        """True when the lead ends up approved. Never raises."""
        return await self.reconcile(uid, amount) != ReconciliationOutcome.FAILED
