class LeadSyncError(Exception):
    """Base class for lead sync and payment reconciliation errors."""


class SheetFetchError(LeadSyncError):
    """Raised when the lead spreadsheet cannot be read."""


class ColumnResolutionError(LeadSyncError):
    """Raised when a required column cannot be found in the sheet header."""

    def __init__(self, field: str, header):
        self.field = field
        self.header = list(header or [])
        super().__init__(f"Could not resolve column for '{field}' in header {self.header}")


class LeadStoreError(LeadSyncError):
    """Raised when a call to the lead store fails."""


class LeadNotFoundError(LeadSyncError):
    """Raised when a lead that must exist is absent from the store."""

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"Lead {uid} not found")


class PaymentGatewayError(LeadSyncError):
    """Raised when the payment gateway rejects a call or cannot be reached."""

    def __init__(self, message: str, status_code=None, details=None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)
