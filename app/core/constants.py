# Lead defaults
DEFAULT_LEAD_NAME = "Não informado"
DEFAULT_COMPLETION_COLUMN = 30

# Payment
DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_COUNTRY_CODE = "55"
PAYMENT_APPROVED = "approved"

# Service endpoints
PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"
