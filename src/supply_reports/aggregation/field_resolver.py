"""Field resolution for loosely-typed supply records.

Records arrive from several API versions, so the same logical value
(a quantity, a dispatch date, a category) can live under different keys.
Every lookup in the aggregation package goes through :func:`resolve` with an
explicit, ordered candidate list so the fallback order is visible in one place.

Nothing here raises for missing or malformed input. Misses are counted on an
optional :class:`ResolutionAudit` so callers can surface data quality.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Sequence

logger = logging.getLogger(__name__)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@dataclass
class ResolutionAudit:
    """Data-quality signals collected during one aggregation call."""

    missing: Counter = field(default_factory=Counter)
    unparsable_dates: int = 0
    unclassified: list[str] = field(default_factory=list)
    total_mismatches: list[str] = field(default_factory=list)

    def note_missing(self, name: str | None) -> None:
        if name:
            self.missing[name] += 1

    def as_dict(self) -> dict:
        return {
            "missing_fields": dict(sorted(self.missing.items())),
            "unparsable_dates": self.unparsable_dates,
            "unclassified_records": len(self.unclassified),
            "unclassified_ids": list(self.unclassified),
            "total_mismatches": list(self.total_mismatches),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _lookup(record: Mapping, name: str) -> Any:
    """Fetch ``name`` from ``record``; dotted names descend into nested dicts."""
    if "." not in name:
        return record.get(name)
    current: Any = record
    for part in name.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _is_usable(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _to_number(value: Any) -> float | None:
    """Convert a value to a finite float, returning None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def parse_date(value: Any) -> datetime | None:
    """Parse a date-like value into a naive UTC datetime.

    Accepts datetime/date objects, ISO-8601 strings (``Z`` and offsets are
    normalized to UTC) and a handful of common calendar formats.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError):
            # offset pushes the instant outside the datetime range
            return None
    return parsed


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve(
    record: Mapping | None,
    candidates: Sequence[str],
    default: Any = None,
    audit: ResolutionAudit | None = None,
    field_name: str | None = None,
) -> Any:
    """Return the first usable value among ``candidates``, else ``default``.

    A value is usable when it is present, not None, not NaN and not a blank
    string. Candidates are never combined.
    """
    if isinstance(record, Mapping):
        for name in candidates:
            value = _lookup(record, name)
            if _is_usable(value):
                return value
    if audit is not None:
        audit.note_missing(field_name)
    return default


def resolve_number(
    record: Mapping | None,
    candidates: Sequence[str],
    default: float | None = 0.0,
    audit: ResolutionAudit | None = None,
    field_name: str | None = None,
) -> float | None:
    """Like :func:`resolve`, skipping candidates that are not finite numbers."""
    if isinstance(record, Mapping):
        for name in candidates:
            num = _to_number(_lookup(record, name))
            if num is not None:
                return num
    if audit is not None:
        audit.note_missing(field_name)
    return default


def resolve_date(
    record: Mapping | None,
    candidates: Sequence[str],
    audit: ResolutionAudit | None = None,
    field_name: str | None = None,
) -> datetime | None:
    """Return the first candidate that parses as a date.

    A present value that fails to parse counts as an unparsable date and the
    next candidate is tried.
    """
    if isinstance(record, Mapping):
        for name in candidates:
            raw = _lookup(record, name)
            if not _is_usable(raw):
                continue
            parsed = parse_date(raw)
            if parsed is not None:
                return parsed
            logger.debug("Unparsable %s value %r in record %s", name, raw, record_id(record))
            if audit is not None:
                audit.unparsable_dates += 1
    if audit is not None:
        audit.note_missing(field_name)
    return None


def resolve_flag(record: Mapping | None, candidates: Sequence[str]) -> bool:
    """True when the first usable candidate is truthy ("true"/"yes"/"1" for strings)."""
    value = resolve(record, candidates)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return bool(value)


def record_id(record: Mapping | None) -> str:
    """Best-effort identifier for logging and audit lists."""
    value = resolve(
        record,
        ("id", "distributionNumber", "shipmentNumber", "receiptNumber", "itemId"),
    )
    return str(value) if value is not None else "<unknown>"


def normalize_name(value: Any, default: str) -> str:
    """Trim, collapse inner whitespace and title-case a grouping key.

    Nested objects and lists are not names and fall back to ``default``.
    """
    if not _is_usable(value) or isinstance(value, (Mapping, list, tuple)):
        return default
    text = " ".join(str(value).split())
    return text.title() if text else default
