import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock
import pytest

from app.core.exceptions import LeadNotFoundError, LeadStoreError
from app.models.lead import Lead
from app.services.payment_reconciliation import PaymentReconciler, ReconciliationOutcome
from app.utils.date_utils import utcnow
from conftest import FIXED_NOW, HEADER, YieldingLeadStore, make_row


def pending_lead(uid: str) -> Lead:
    return Lead(uid=uid, name="Yara", registered_at=datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_mark_paid_existing_lead(store, lead_sync):
    store.add(pending_lead("Y"))
    reconciler = PaymentReconciler(store, lead_sync)
    lead_sync.sync_all = AsyncMock(return_value=True)
    before = utcnow()

    assert await reconciler.mark_paid("Y", 99.9) is True

    row = store.rows["Y"]
    assert row["payment_status"] == "approved"
    assert row["amount_paid"] == 99.9
    assert datetime.fromisoformat(row["paid_at"]) >= before
    lead_sync.sync_all.assert_not_called()


@pytest.mark.asyncio
async def test_missing_lead_triggers_one_sync_before_update(store, lead_sync, reconciler):
    calls = []

    async def fake_sync():
        calls.append(("sync", len(store.update_calls)))
        store.add(pending_lead("X"))
        return True

    lead_sync.sync_all = fake_sync

    assert await reconciler.mark_paid("X", 50) is True

    assert calls == [("sync", 0)]
    assert store.rows["X"]["payment_status"] == "approved"
    assert store.rows["X"]["amount_paid"] == 50


@pytest.mark.asyncio
async def test_missing_lead_is_pulled_from_sheet(sheets, store, reconciler):
    sheets.rows = [HEADER, make_row("2024-01-01T00:00:00Z", "Xavier", "X")]

    assert await reconciler.mark_paid("X", 50) is True

    assert sheets.fetch_calls == 1
    assert store.rows["X"]["name"] == "Xavier"
    assert store.rows["X"]["paid_at"] == FIXED_NOW.isoformat()


@pytest.mark.asyncio
async def test_lead_still_missing_after_sync_is_a_failure(sheets, store, reconciler):
    sheets.rows = [HEADER, make_row("2024-01-01", "Other", "other-uid")]

    assert await reconciler.mark_paid("ghost", 10) is False

    assert sheets.fetch_calls == 1
    assert "ghost" not in store.rows
    assert store.update_calls == []


@pytest.mark.asyncio
async def test_apply_payment_fails_loudly_without_row(store, reconciler):
    with pytest.raises(LeadNotFoundError):
        await reconciler.apply_payment("ghost", 10)


@pytest.mark.asyncio
async def test_ensure_record_exists(sheets, store, reconciler):
    store.add(pending_lead("A"))
    sheets.rows = [HEADER, make_row("2024-01-01", "Bia", "B")]

    assert await reconciler.ensure_record_exists("A") is True
    assert sheets.fetch_calls == 0
    assert await reconciler.ensure_record_exists("B") is True
    assert sheets.fetch_calls == 1
    assert await reconciler.ensure_record_exists("C") is False
    assert sheets.fetch_calls == 2


@pytest.mark.asyncio
async def test_store_errors_are_absorbed(store, reconciler):
    store.fail_lookups = True
    assert await reconciler.mark_paid("Y", 10) is False


@pytest.mark.asyncio
async def test_sync_errors_are_absorbed(store, lead_sync, reconciler):
    lead_sync.sync_all = AsyncMock(side_effect=LeadStoreError("boom"))
    assert await reconciler.reconcile("X", 10) == ReconciliationOutcome.FAILED


@pytest.mark.asyncio
async def test_already_approved_lead_is_not_rewritten(store, lead_sync, reconciler):
    lead = pending_lead("Y")
    store.add(lead)
    store.rows["Y"].update({"payment_status": "approved", "amount_paid": 10, "paid_at": "2024-01-02T00:00:00+00:00"})

    assert await reconciler.reconcile("Y", 10) == ReconciliationOutcome.ALREADY_APPROVED
    assert await reconciler.mark_paid("Y", 10) is True
    assert store.update_calls == []
    assert store.rows["Y"]["paid_at"] == "2024-01-02T00:00:00+00:00"


@pytest.mark.asyncio
async def test_overlapping_approvals_approve_once(lead_sync):
    store = YieldingLeadStore()
    store.add(pending_lead("Y"))
    reconciler = PaymentReconciler(store, lead_sync, clock=lambda: FIXED_NOW)

    outcomes = await asyncio.gather(reconciler.reconcile("Y", 10), reconciler.reconcile("Y", 10))

    assert sorted(outcome.value for outcome in outcomes) == ["already_approved", "approved"]
    assert store.rows["Y"]["payment_status"] == "approved"
    assert store.rows["Y"]["paid_at"] == FIXED_NOW.isoformat()


@pytest.mark.asyncio
async def test_apply_payment_only_touches_pending_leads(store, reconciler):
    store.add(pending_lead("Y"))
    store.rows["Y"].update({"payment_status": "approved", "amount_paid": 10})

    with pytest.raises(LeadNotFoundError):
        await reconciler.apply_payment("Y", 99)
    assert store.rows["Y"]["amount_paid"] == 10
