import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import pytest

from app.core.exceptions import LeadStoreError, SheetFetchError
from app.jobs.sheet_sync import LeadSyncService
from app.models.lead import Lead
from app.services.config_manager import Settings
from app.services.payment_reconciliation import PaymentReconciler

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

HEADER = ["Timestamp", "Name", "Submission Id", "Q30"]


class FakeSheets:
    """In-memory stand-in for GoogleSheetsService."""

    def __init__(self, rows: Optional[List[List[Any]]] = None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.fetch_calls = 0
        self.is_configured = True

    async def fetch_rows(self, range_name=None):
        self.fetch_calls += 1
        if self.error:
            raise self.error
        return self.rows

    def is_healthy(self) -> bool:
        return True


class InMemoryLeadStore:
    """In-memory stand-in for LeadStore with the table's column defaults."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.fail_upsert_uids = set()
        self.fail_lookups = False
        self.upsert_calls: List[Dict[str, Any]] = []
        self.update_calls: List[tuple] = []
        self.lookups: List[str] = []
        self.connected = True

    async def get_by_uid(self, uid: str) -> Optional[Dict[str, Any]]:
        self.lookups.append(uid)
        if self.fail_lookups:
            raise LeadStoreError("select failed")
        row = self.rows.get(uid)
        return dict(row) if row else None

    async def upsert(self, record: Dict[str, Any]) -> None:
        self.upsert_calls.append(record)
        uid = record["uid"]
        if uid in self.fail_upsert_uids:
            raise LeadStoreError(f"upsert of {uid} failed")
        if uid in self.rows:
            self.rows[uid].update(record)
        else:
            self.rows[uid] = Lead(**record).model_dump(mode="json")

    async def update_by_uid(self, uid: str, fields: Dict[str, Any], pending_only: bool = False) -> List[Dict[str, Any]]:
        self.update_calls.append((uid, fields))
        if uid not in self.rows:
            return []
        if pending_only and self.rows[uid].get("payment_status") != "pending":
            return []
        self.rows[uid].update(fields)
        return [dict(self.rows[uid])]

    async def is_connected(self) -> bool:
        return self.connected

    def add(self, lead: Lead) -> None:
        self.rows[lead.uid] = lead.model_dump(mode="json")


class YieldingLeadStore(InMemoryLeadStore):
    """Gives the event loop a turn before every read and write, like a remote store."""

    async def get_by_uid(self, uid: str) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        return await super().get_by_uid(uid)

    async def update_by_uid(self, uid: str, fields: Dict[str, Any], pending_only: bool = False) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return await super().update_by_uid(uid, fields, pending_only=pending_only)


def make_row(timestamp: str, name: str, uid: str, final_answer: str = "", width: int = 31) -> List[str]:
    """A sheet row whose final answer sits at column 30."""
    row = [timestamp, name, uid] + [""] * (width - 3)
    row[30] = final_answer
    return row


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        ENABLE_SHEET_SYNC=False,
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_SERVICE_KEY="service-key",
        SHEET_ID="1234567890abcdef",
        MERCADOPAGO_ACCESS_TOKEN="TEST-token",
        EVOLUTION_URL="https://evolution.example.com",
        EVOLUTION_API_KEY="evo-key",
        EVOLUTION_INSTANCE="Quiz Bot",
        RESULT_PAGE_URL="https://quiz.example.com/resultado",
    )


@pytest.fixture
def store():
    return InMemoryLeadStore()


@pytest.fixture
def sheets():
    return FakeSheets()


@pytest.fixture
def lead_sync(sheets, store):
    return LeadSyncService(sheets, store, clock=lambda: FIXED_NOW)


@pytest.fixture
def reconciler(store, lead_sync):
    return PaymentReconciler(store, lead_sync, clock=lambda: FIXED_NOW)
