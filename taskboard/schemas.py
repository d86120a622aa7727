from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from .models import TASK_PRIORITIES
from .utils import as_utc, utcnow


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and v == "":
        return None
    return v


class TaskInput(BaseModel):
    """Validated task form: the shape create and update accept.

    Pass ``context={"now": <aware datetime>}`` to pin the validation time;
    otherwise the current UTC time is used.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = Field(default="", validate_default=True)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    priority: TaskPriority = Field(default=None, validate_default=True)
    due_date: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, v: Any) -> Any:
        if v is None or v == "":
            raise PydanticCustomError("title_required", "Title is required")
        if not isinstance(v, str):
            raise PydanticCustomError("title_type", "Title must be text")
        if len(v) < 3:
            raise PydanticCustomError("title_too_short", "Title must be at least 3 characters")
        if len(v) > 100:
            raise PydanticCustomError("title_too_long", "Title must be less than 100 characters")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if isinstance(v, str) and len(v) > 500:
            raise PydanticCustomError(
                "description_too_long", "Description must be less than 500 characters",
            )
        return v

    @field_validator("category_id", mode="before")
    @classmethod
    def check_category_id(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None or isinstance(v, UUID):
            return v
        try:
            return UUID(str(v))
        except ValueError:
            raise PydanticCustomError("category_invalid", "Invalid category selected")

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, v: Any) -> Any:
        if isinstance(v, TaskPriority):
            return v
        if v is None or v == "":
            raise PydanticCustomError("priority_required", "Priority is required")
        if v not in TASK_PRIORITIES:
            raise PydanticCustomError(
                "priority_invalid",
                "Priority must be one of: {allowed}",
                {"allowed": ", ".join(TASK_PRIORITIES)},
            )
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("due_date")
    @classmethod
    def check_due_date(cls, v: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        if v is None:
            return v
        v = as_utc(v)
        now = (info.context or {}).get("now") or utcnow()
        if v <= as_utc(now):
            raise PydanticCustomError("due_date_past", "Due date must be in the future")
        return v


class CategoryInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(default="#6366f1", pattern="^#[0-9a-fA-F]{6}$")
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("description", mode="before")
    @classmethod
    def blank_description(cls, v: Any) -> Any:
        return _blank_to_none(v)


class StatusUpdate(BaseModel):
    status: str


class CategorySummary(BaseModel):
    id: UUID
    name: str
    color: str

    model_config = ConfigDict(from_attributes=True)


class CategoryRead(CategorySummary):
    user_id: UUID
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskRead(BaseModel):
    id: UUID
    user_id: UUID
    category_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TaskWithCategory(TaskRead):
    """List row: a task joined with its category's display fields"""
    category: Optional[CategorySummary] = None


class TaskSummary(BaseModel):
    total: int = 0
    todo: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0


# Operation results
class FailureKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    INVALID_CATEGORY = "invalid_category"
    NOT_FOUND = "not_found"
    STORE = "store"
    UNEXPECTED = "unexpected"


class ActionSuccess(BaseModel):
    success: Literal[True] = True
    data: Any = None


class ActionFailure(BaseModel):
    success: Literal[False] = False
    message: str
    errors: Optional[Dict[str, List[str]]] = None
    kind: FailureKind = Field(default=FailureKind.UNEXPECTED, exclude=True)


ActionResult = Union[ActionSuccess, ActionFailure]


# Page-refresh messages pushed over the updates socket
class RevalidateMessage(BaseModel):
    type: str = Field(default="revalidate", pattern="^(revalidate|connection|ping)$")
    data: dict
