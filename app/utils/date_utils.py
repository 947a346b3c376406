from datetime import datetime, timezone
from typing import Any, Optional

# Formats the form tool and Google Sheets emit besides ISO-8601
SUBMISSION_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_submission_time(value: Any, now: Optional[datetime] = None) -> datetime:
    """
    Parse a submission timestamp from a sheet cell.
    Naive values are taken as UTC. Empty or unparseable input returns `now`.
    """
    fallback = now or utcnow()
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip() if value is not None else ""
        if not text:
            return fallback
        parsed = _parse_text(text)
        if parsed is None:
            return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_text(text: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in SUBMISSION_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None
