import asyncio
import json
import logging
from typing import List, Any, Optional

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.core.exceptions import SheetFetchError
from app.services.config_manager import Settings

logger = logging.getLogger(__name__)
SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

class GoogleSheetsService:
    def __init__(self, settings: Settings, client=None):
        self.client = client
        self.sheet_id = settings.SHEET_ID
        # Range pulled from settings, no hard-coded strings here
        self.leads_range = settings.leads_range

        if self.client is not None:
            return

        # Check for empty credentials
        raw_json = settings.GOOGLE_SHEETS_CREDENTIALS_JSON.strip()
        if not raw_json:
            logger.warning("Google Sheets credentials not configured. Skipping Sheets service.")
            return

        try:
            creds_info = json.loads(raw_json)
            creds = Credentials.from_service_account_info(creds_info, scopes=SCOPES)
            self.client = build("sheets", "v4", credentials=creds, cache_discovery=False)
            logger.info("Google Sheets service initialized successfully")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid Google Sheets credentials JSON: {e}")
        except Exception as e:
            logger.error(f"Failed to initialize Google Sheets service: {e}")

    @property
    def is_configured(self) -> bool:
        return self.client is not None and bool(self.sheet_id)

    def _fetch_rows(self, range_name: str) -> List[List[Any]]:
        try:
            resp = (
                self.client.spreadsheets()
                    .values()
                    .get(spreadsheetId=self.sheet_id, range=range_name)
                    .execute()
            )
        except HttpError as e:
            logger.error("Google API error fetching %s: %s", range_name, e)
            raise SheetFetchError(f"Google API error fetching {range_name}: {e}") from e
        except Exception as e:
            logger.error("Failed to fetch %s: %s", range_name, e)
            raise SheetFetchError(f"Failed to fetch {range_name}: {e}") from e
        return resp.get("values", [])

    async def fetch_rows(self, range_name: Optional[str] = None) -> List[List[Any]]:
        """Return the 2-D values of a range; row 0 is the header."""
        if not self.is_configured:
            raise SheetFetchError("Google Sheets client not initialized")

        range_name = range_name or self.leads_range
        return await asyncio.to_thread(self._fetch_rows, range_name)

    def is_healthy(self) -> bool:
        """Check if the Google Sheets service is healthy."""
        if not self.is_configured:
            return False
        try:
            # Try a simple API call to verify credentials
            self.client.spreadsheets().get(spreadsheetId=self.sheet_id, fields="spreadsheetId").execute()
            return True
        except Exception as e:
            logger.error(f"Google Sheets health check failed: {e}")
            return False
