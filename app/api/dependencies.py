from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Request

from app.jobs.sheet_sync import LeadSyncService
from app.services.config_manager import Settings
from app.services.google_sheets import GoogleSheetsService
from app.services.lead_parser import DEFAULT_MAPPING
from app.services.lead_store import LeadStore, build_supabase_client
from app.services.payment_gateway import MercadoPagoClient
from app.services.payment_reconciliation import PaymentReconciler
from app.services.pushover import PushoverNotifier
from app.services.whatsapp import WhatsAppNotifier


@dataclass
class Services:
    """Everything the routes need, built once per application."""
    settings: Settings
    sheets: GoogleSheetsService
    store: LeadStore
    lead_sync: LeadSyncService
    reconciler: PaymentReconciler
    gateway: MercadoPagoClient
    whatsapp: WhatsAppNotifier
    pushover: PushoverNotifier
    scheduler: Optional[AsyncIOScheduler] = None
    scheduler_started_at: Optional[datetime] = None

    async def close(self) -> None:
        await self.gateway.close()
        await self.whatsapp.close()
        await self.pushover.close()


def build_services(settings: Settings) -> Services:
    sheets = GoogleSheetsService(settings)
    store = LeadStore(build_supabase_client(settings), table=settings.SUPABASE_TABLE)
    lead_sync = LeadSyncService(
        sheets,
        store,
        mapping=DEFAULT_MAPPING,
        completion_column=settings.COMPLETION_COLUMN_INDEX,
    )
    return Services(
        settings=settings,
        sheets=sheets,
        store=store,
        lead_sync=lead_sync,
        reconciler=PaymentReconciler(store, lead_sync),
        gateway=MercadoPagoClient(settings),
        whatsapp=WhatsAppNotifier(settings),
        pushover=PushoverNotifier(settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
