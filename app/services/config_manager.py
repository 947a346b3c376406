from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import validator, Field, model_validator
import logging
from functools import lru_cache

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000
    BASE_URL: Optional[str] = None

    # API Settings
    PROJECT_NAME: str = "Teste de Prosperidade Backend"
    VERSION: str = "2.0.0"

    # CORS
    CORS_ORIGINS: List[str] = [
        "https://quizfront.vercel.app",
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Supabase
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_KEY: Optional[str] = None
    SUPABASE_TABLE: str = Field(default="leads")

    # Google Sheets
    SHEET_ID: Optional[str] = None
    GOOGLE_SHEETS_CREDENTIALS_JSON: str = Field(default="")
    LEADS_SHEET_NAME: str = Field(default="Respostas")
    GOOGLE_SHEETS_LEADS_RANGE: str = Field(default="A1:AZ5000")

    # Lead parsing
    COMPLETION_COLUMN_INDEX: int = 30
    FINAL_ANSWER_FIELD: str = "Q30"

    # Scheduled sync
    ENABLE_SHEET_SYNC: bool = True
    SHEET_SYNC_INTERVAL_MINUTES: int = 30

    # Mercado Pago
    MERCADOPAGO_ACCESS_TOKEN: Optional[str] = None
    MERCADOPAGO_PUBLIC_KEY: Optional[str] = None
    MERCADOPAGO_WEBHOOK_SECRET: Optional[str] = None
    MERCADOPAGO_BASE_URL: str = Field(default="https://api.mercadopago.com")
    PAYMENT_DESCRIPTION: str = "Teste de Prosperidade - Resultado completo"
    # Shared secret for POST /api/payment-approved; falls back to the webhook secret
    PAYMENT_APPROVED_SECRET: Optional[str] = None

    # WhatsApp (Evolution API)
    EVOLUTION_URL: Optional[str] = None
    EVOLUTION_API_KEY: Optional[str] = None
    EVOLUTION_INSTANCE: Optional[str] = None
    RESULT_PAGE_URL: Optional[str] = None

    # Pushover
    PUSHOVER_APP_TOKEN: Optional[str] = None
    PUSHOVER_USER_KEY: Optional[str] = None

    HTTP_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True

    @validator("SHEET_ID")
    def validate_sheet_id(cls, v):
        if v and len(v) < 10:  # Only validate if value is provided
            raise ValueError("SHEET_ID must be a valid Google Sheet ID")
        return v

    @validator("SUPABASE_URL")
    def validate_supabase_url(cls, v):
        if v and not v.startswith("https://"):  # Only validate if value is provided
            raise ValueError("SUPABASE_URL must be a valid HTTPS URL")
        return v

    @validator("COMPLETION_COLUMN_INDEX")
    def validate_completion_column(cls, v):
        if v < 0:
            raise ValueError("COMPLETION_COLUMN_INDEX must be zero or positive")
        return v

    @validator("SHEET_SYNC_INTERVAL_MINUTES")
    def validate_sync_interval(cls, v):
        if v < 1:
            raise ValueError("SHEET_SYNC_INTERVAL_MINUTES must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_related_settings(self) -> 'Settings':
        """Validate that related settings are consistent."""
        if self.SUPABASE_SERVICE_KEY and not self.SUPABASE_URL:
            raise ValueError("SUPABASE_URL must be set when SUPABASE_SERVICE_KEY is provided")

        if self.PUSHOVER_USER_KEY and not self.PUSHOVER_APP_TOKEN:
            raise ValueError("PUSHOVER_APP_TOKEN must be set when PUSHOVER_USER_KEY is provided")

        return self

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY)

    @property
    def sheets_enabled(self) -> bool:
        return bool(self.GOOGLE_SHEETS_CREDENTIALS_JSON.strip() and self.SHEET_ID)

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.EVOLUTION_URL and self.EVOLUTION_API_KEY and self.EVOLUTION_INSTANCE)

    @property
    def pushover_enabled(self) -> bool:
        return bool(self.PUSHOVER_APP_TOKEN and self.PUSHOVER_USER_KEY)

    @property
    def leads_range(self) -> str:
        return f"{self.LEADS_SHEET_NAME}!{self.GOOGLE_SHEETS_LEADS_RANGE}"

    @property
    def approval_secret(self) -> Optional[str]:
        return self.PAYMENT_APPROVED_SECRET or self.MERCADOPAGO_WEBHOOK_SECRET

    def validate_optional_settings(self) -> None:
        """Validate optional settings and log warnings for missing values."""
        # Google Sheets
        if not self.GOOGLE_SHEETS_CREDENTIALS_JSON.strip():
            logger.warning("GOOGLE_SHEETS_CREDENTIALS_JSON is missing, lead sync will be disabled!")
        if not self.SHEET_ID:
            logger.warning("SHEET_ID is missing, lead sync will be disabled!")

        # Supabase
        if not self.SUPABASE_URL:
            logger.warning("SUPABASE_URL is missing, lead storage will be disabled!")
        if not self.SUPABASE_SERVICE_KEY:
            logger.warning("SUPABASE_SERVICE_KEY is missing, lead storage will be disabled!")

        # Mercado Pago
        if not self.MERCADOPAGO_ACCESS_TOKEN:
            logger.warning("MERCADOPAGO_ACCESS_TOKEN is missing, payments will be disabled!")
        if not self.MERCADOPAGO_WEBHOOK_SECRET:
            logger.warning("MERCADOPAGO_WEBHOOK_SECRET is missing, webhook signatures will not be checked!")
        if not self.approval_secret:
            logger.warning("PAYMENT_APPROVED_SECRET is missing, /api/payment-approved accepts unauthenticated calls!")
        if not self.BASE_URL:
            logger.warning("BASE_URL is missing, payments will be created without a notification_url!")

        # Notifications
        if not self.whatsapp_enabled:
            logger.warning("Evolution API settings are incomplete, WhatsApp notifications will be disabled!")
        if not self.RESULT_PAGE_URL:
            logger.warning("RESULT_PAGE_URL is missing, WhatsApp notifications will be disabled!")
        if not self.pushover_enabled:
            logger.warning("Pushover tokens are missing, sale alerts will be disabled!")

    def log_configuration(self) -> None:
        """Log the current configuration state (excluding sensitive values)."""
        logger.info(f"Environment: {self.ENVIRONMENT}")
        logger.info(f"Port: {self.PORT}")
        logger.info(f"Leads table: {self.SUPABASE_TABLE}")
        logger.info(f"Leads range: {self.leads_range}")
        logger.info(f"Scheduled sync: {'every %d min' % self.SHEET_SYNC_INTERVAL_MINUTES if self.ENABLE_SHEET_SYNC else 'Disabled'}")
        logger.info(f"Supabase: {'Enabled' if self.supabase_enabled else 'Disabled'}")
        logger.info(f"Google Sheets: {'Enabled' if self.sheets_enabled else 'Disabled'}")
        logger.info(f"Mercado Pago: {'Enabled' if self.MERCADOPAGO_ACCESS_TOKEN else 'Disabled'}")
        logger.info(f"WhatsApp: {'Enabled' if self.whatsapp_enabled else 'Disabled'}")
        logger.info(f"Pushover: {'Enabled' if self.pushover_enabled else 'Disabled'}")

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
