from datetime import datetime, timezone
from typing import Dict, Iterable, Tuple
from uuid import UUID

DASHBOARD_PATH = "/dashboard"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken to already be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def edit_task_path(task_id: UUID) -> str:
    return f"/tasks/edit/{task_id}"


def tally_statuses(rows: Iterable[Tuple[str, int]], statuses: Iterable[str]) -> Dict[str, int]:
    """Zero-filled per-status counts plus a total from (status, count) rows"""
    counts = {status: 0 for status in statuses}
    for status, count in rows:
        counts[status] = counts.get(status, 0) + int(count)
    counts["total"] = sum(counts.values())
    return counts


def flatten_errors(errors: Iterable[dict]) -> Dict[str, list]:
    """Turn pydantic error dicts into a {field: [message, ...]} map"""
    field_errors: Dict[str, list] = {}
    for error in errors:
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else "_form"
        field_errors.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return field_errors
