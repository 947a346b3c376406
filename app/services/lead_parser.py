"""
Turns raw form rows into Lead records.

Columns are found by a case-insensitive substring match of the header against
an ordered list of candidate names per field (see ColumnMapping). Only the
submission id column is mandatory.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.core.constants import DEFAULT_LEAD_NAME, DEFAULT_COMPLETION_COLUMN
from app.core.exceptions import ColumnResolutionError
from app.models.lead import Lead
from app.utils.date_utils import parse_submission_time, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMapping:
    """Candidate header names per logical field, highest priority first."""
    uid: Tuple[str, ...] = ("submission id", "submission_id", "id da resposta", "uid")
    name: Tuple[str, ...] = ("qual o seu nome", "nome", "name")
    email: Tuple[str, ...] = ("qual o seu e-mail", "e-mail", "email")
    whatsapp: Tuple[str, ...] = ("qual seu whatsapp", "whatsapp", "telefone", "phone")
    submitted_at: Tuple[str, ...] = ("submitted at", "timestamp", "carimbo de data", "data")

    def candidates(self) -> Dict[str, Tuple[str, ...]]:
        return {
            "uid": self.uid,
            "name": self.name,
            "email": self.email,
            "whatsapp": self.whatsapp,
            "submitted_at": self.submitted_at,
        }


DEFAULT_MAPPING = ColumnMapping()


@dataclass(frozen=True)
class ResolvedColumns:
    uid: int
    name: Optional[int] = None
    email: Optional[int] = None
    whatsapp: Optional[int] = None
    submitted_at: Optional[int] = None


def _find_column(headers: List[str], candidates: Sequence[str]) -> Optional[int]:
    for candidate in candidates:
        needle = candidate.strip().lower()
        for index, header in enumerate(headers):
            if needle and needle in header:
                return index
    return None


def resolve_columns(header: Sequence[Any], mapping: ColumnMapping = DEFAULT_MAPPING) -> ResolvedColumns:
    """Resolve field positions in a header row. Raises if the uid column is missing."""
    headers = [str(h).strip().lower() for h in (header or [])]
    found = {name: _find_column(headers, candidates) for name, candidates in mapping.candidates().items()}

    if found["uid"] is None:
        raise ColumnResolutionError("uid", header)

    logger.debug("Resolved sheet columns: %s", found)
    return ResolvedColumns(**found)


def _cell(row: Sequence[Any], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return str(value).strip() if value is not None else ""


def is_completed(row: Sequence[Any], completion_column: int = DEFAULT_COMPLETION_COLUMN) -> bool:
    """True iff the final-answer cell exists and is not blank."""
    return bool(_cell(row, completion_column))


def build_lead(
    row: Sequence[Any],
    columns: ResolvedColumns,
    completion_column: int = DEFAULT_COMPLETION_COLUMN,
    now: Optional[datetime] = None,
) -> Optional[Lead]:
    """Build a Lead from one data row, or None when the row has no submission id."""
    uid = _cell(row, columns.uid)
    if not uid:
        return None

    raw_time = row[columns.submitted_at] if columns.submitted_at is not None and columns.submitted_at < len(row) else None
    return Lead(
        uid=uid,
        name=_cell(row, columns.name) or DEFAULT_LEAD_NAME,
        email=_cell(row, columns.email),
        whatsapp=_cell(row, columns.whatsapp),
        registered_at=parse_submission_time(raw_time, now or utcnow()),
        started_test=True,
        completed_test=is_completed(row, completion_column),
    )


def lead_from_submission(
    payload: Dict[str, Any],
    final_answer_field: str,
    mapping: ColumnMapping = DEFAULT_MAPPING,
    now: Optional[datetime] = None,
) -> Optional[Lead]:
    """Build a Lead from a single flat form webhook payload keyed by question label."""
    header = list(payload.keys())
    row = [payload[key] for key in header]
    columns = resolve_columns(header, mapping)

    completion_column = header.index(final_answer_field) if final_answer_field in payload else len(row)
    return build_lead(row, columns, completion_column=completion_column, now=now)
