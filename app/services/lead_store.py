from typing import List, Optional, Dict, Any
import asyncio
import logging
from supabase import create_client, Client

from app.core.exceptions import LeadStoreError
from app.models.lead import PaymentStatus
from app.services.config_manager import Settings

logger = logging.getLogger(__name__)

CONFLICT_KEY = "uid"


def build_supabase_client(settings: Settings) -> Optional[Client]:
    """Create a Supabase client if credentials are available."""
    if not settings.supabase_enabled:
        logger.warning("Supabase credentials missing, client not initialized")
        return None
    try:
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        logger.info("Supabase client initialized successfully")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {str(e)}")
        raise


class LeadStore:
    """Lead table access: select, update and upsert keyed by submission id."""

    def __init__(self, client: Optional[Client], table: str = "leads"):
        self._client = client
        self.table = table

    @property
    def client(self) -> Client:
        if self._client is None:
            raise LeadStoreError("Supabase client not initialized")
        return self._client

    async def _execute(self, action: str, query) -> Any:
        try:
            return await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error(f"Supabase {action} on {self.table} failed: {e}")
            raise LeadStoreError(f"Supabase {action} failed: {e}") from e

    async def get_by_uid(self, uid: str) -> Optional[Dict[str, Any]]:
        """Fetch a lead by submission id."""
        query = self.client.table(self.table).select("*").eq(CONFLICT_KEY, uid).limit(1)
        result = await self._execute("select", query)
        return result.data[0] if result.data else None

    async def upsert(self, record: Dict[str, Any]) -> None:
        """Insert or update a lead, keyed by uid."""
        if not record.get(CONFLICT_KEY):
            raise LeadStoreError("Cannot upsert a lead without a uid")
        query = self.client.table(self.table).upsert(record, on_conflict=CONFLICT_KEY)
        await self._execute("upsert", query)

    async def update_by_uid(self, uid: str, fields: Dict[str, Any], pending_only: bool = False) -> List[Dict[str, Any]]:
        """
        Update a lead in place. Returns the updated rows, empty if none matched.

        With pending_only the row must still have payment_status 'pending',
        which turns the update into a single compare-and-set on the server.
        """
        query = self.client.table(self.table).update(fields).eq(CONFLICT_KEY, uid)
        if pending_only:
            query = query.eq("payment_status", PaymentStatus.PENDING.value)
        result = await self._execute("update", query)
        return result.data or []

    async def is_connected(self) -> bool:
        """Check if the Supabase connection is healthy."""
        try:
            query = self.client.table(self.table).select(CONFLICT_KEY).limit(1)
            await self._execute("health check", query)
            return True
        except LeadStoreError as e:
            logger.error(f"Supabase health check failed: {str(e)}")
            return False
