from datetime import datetime
from typing import Optional
import pytz

from app.core.constants import DEFAULT_TIMEZONE


def format_local(dt: Optional[datetime] = None, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """Format as DD/MM/YYYY HH:MM in the given timezone (São Paulo by default)."""
    tz = pytz.timezone(tz_name)
    if dt is None:
        local = datetime.now(tz)
    elif dt.tzinfo is None:
        local = pytz.utc.localize(dt).astimezone(tz)
    else:
        local = dt.astimezone(tz)
    return local.strftime("%d/%m/%Y %H:%M")


def format_brl(amount: Optional[float]) -> str:
    """Format an amount as Brazilian reais, e.g. R$ 10,00."""
    value = float(amount or 0)
    return f"R$ {value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
