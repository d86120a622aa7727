from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .models import TASK_STATUSES
from .schemas import CategoryInput, TaskInput
from .utils import flatten_errors, utcnow


def validate_task_form(
    raw: Any,
    now: Optional[datetime] = None,
) -> Tuple[Optional[TaskInput], Dict[str, List[str]]]:
    """Validate raw task form fields and return (task_input, field_errors)"""
    if isinstance(raw, TaskInput):
        raw = raw.model_dump()
    try:
        task_input = TaskInput.model_validate(raw, context={"now": now or utcnow()})
    except ValidationError as e:
        return None, flatten_errors(e.errors())
    return task_input, {}


def validate_category_form(raw: Any) -> Tuple[Optional[CategoryInput], Dict[str, List[str]]]:
    """Validate raw category form fields and return (category_input, field_errors)"""
    try:
        return CategoryInput.model_validate(raw), {}
    except ValidationError as e:
        return None, flatten_errors(e.errors())


def validate_status(status: Any) -> Dict[str, List[str]]:
    if status not in TASK_STATUSES:
        return {"status": [f"Status must be one of: {', '.join(TASK_STATUSES)}"]}
    return {}
