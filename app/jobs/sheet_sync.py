from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Dict, Any, Optional
import logging
import time

from app.core.constants import DEFAULT_COMPLETION_COLUMN
from app.models.lead import Lead
from app.services.google_sheets import GoogleSheetsService
from app.services.lead_parser import ColumnMapping, DEFAULT_MAPPING, resolve_columns, build_lead
from app.services.lead_store import LeadStore
from app.services.prometheus_metrics import SYNC_RUNS, LEAD_UPSERTS, SYNC_DURATION, LAST_SYNC_TIMESTAMP
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    total_rows: int = 0
    upserted: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class LeadSyncService:
    """Full re-read of the lead sheet, upserting every row into the lead store."""

    def __init__(
        self,
        sheets: GoogleSheetsService,
        store: LeadStore,
        mapping: ColumnMapping = DEFAULT_MAPPING,
        completion_column: int = DEFAULT_COMPLETION_COLUMN,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sheets = sheets
        self.store = store
        self.mapping = mapping
        self.completion_column = completion_column
        self.clock = clock
        self.last_report: Optional[SyncReport] = None

    async def upsert_lead(self, lead: Lead) -> None:
        try:
            await self.store.upsert(lead.to_sync_record())
        except Exception:
            LEAD_UPSERTS.labels(result="failed").inc()
            raise
        LEAD_UPSERTS.labels(result="success").inc()

    async def sync_all(self) -> bool:
        """
        Upsert every sheet row into the lead store.

        Returns False when the sheet has no data rows, True once a pass
        completes, even if some rows failed. Fetch errors and an unresolvable
        submission id column propagate to the caller.
        """
        start = time.time()
        try:
            rows = await self.sheets.fetch_rows()
        except Exception:
            SYNC_RUNS.labels(result="fetch_error").inc()
            raise

        if not rows or len(rows) < 2:
            logger.warning("Lead sheet has no data rows, nothing to sync")
            SYNC_RUNS.labels(result="empty").inc()
            return False

        try:
            columns = resolve_columns(rows[0], self.mapping)
        except Exception:
            SYNC_RUNS.labels(result="bad_header").inc()
            raise

        report = SyncReport(total_rows=len(rows) - 1)
        now = self.clock()
        for row in rows[1:]:
            lead = build_lead(row, columns, completion_column=self.completion_column, now=now)
            if lead is None:
                report.skipped += 1
                continue
            try:
                await self.upsert_lead(lead)
                report.upserted += 1
            except Exception as e:
                logger.error("Upsert lead %s failed: %s", lead.uid, e)
                report.failed += 1

        report.duration_seconds = time.time() - start
        report.finished_at = self.clock()
        self.last_report = report

        SYNC_RUNS.labels(result="completed").inc()
        SYNC_DURATION.observe(report.duration_seconds)
        LAST_SYNC_TIMESTAMP.set_to_current_time()
        logger.info("Leads upsert complete. Success: %d, Failed: %d, Skipped: %d, Time: %.2fs",
                    report.upserted, report.failed, report.skipped, report.duration_seconds)
        return True
