import pytest
from unittest.mock import Mock, patch
from googleapiclient.errors import HttpError

from app.core.exceptions import SheetFetchError
from app.services.google_sheets import GoogleSheetsService


@pytest.fixture
def mock_sheets():
    """Create a mock Google Sheets API client."""
    return Mock()


def test_service_without_credentials_is_not_configured(settings):
    service = GoogleSheetsService(settings)
    assert service.client is None
    assert service.is_configured is False
    assert service.is_healthy() is False


def test_service_builds_client_from_credentials(settings):
    settings.GOOGLE_SHEETS_CREDENTIALS_JSON = '{"type": "service_account"}'
    with patch("app.services.google_sheets.Credentials") as mock_creds, \
            patch("app.services.google_sheets.build") as mock_build:
        service = GoogleSheetsService(settings)

    mock_creds.from_service_account_info.assert_called_once()
    mock_build.assert_called_once()
    assert service.client is mock_build.return_value


def test_invalid_credentials_json_leaves_client_unset(settings):
    settings.GOOGLE_SHEETS_CREDENTIALS_JSON = "not-json"
    service = GoogleSheetsService(settings)
    assert service.client is None


@pytest.mark.asyncio
async def test_fetch_rows_returns_values(settings, mock_sheets):
    rows = [["Submission Id", "Name"], ["sub-1", "Ana"]]
    mock_sheets.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {"values": rows}

    service = GoogleSheetsService(settings, client=mock_sheets)
    assert await service.fetch_rows() == rows

    mock_sheets.spreadsheets.return_value.values.return_value.get.assert_called_once_with(
        spreadsheetId=settings.SHEET_ID, range="Respostas!A1:AZ5000"
    )


@pytest.mark.asyncio
async def test_fetch_rows_empty_sheet(settings, mock_sheets):
    mock_sheets.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {}
    service = GoogleSheetsService(settings, client=mock_sheets)
    assert await service.fetch_rows() == []


@pytest.mark.asyncio
async def test_fetch_rows_raises_on_api_error(settings, mock_sheets):
    error = HttpError(Mock(status=403, reason="Forbidden"), b'{"error": {"code": 403, "message": "forbidden"}}')
    mock_sheets.spreadsheets.return_value.values.return_value.get.return_value.execute.side_effect = error

    service = GoogleSheetsService(settings, client=mock_sheets)
    with pytest.raises(SheetFetchError):
        await service.fetch_rows()


@pytest.mark.asyncio
async def test_fetch_rows_requires_configuration(settings):
    with pytest.raises(SheetFetchError):
        await GoogleSheetsService(settings).fetch_rows()
