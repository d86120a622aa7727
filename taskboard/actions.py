"""Task and category operations.

Each operation takes an explicit ActionContext (who is calling, which store,
who to tell about stale pages) and always returns an ActionResult. Failures
never propagate: store errors and anything unexpected are logged here and
turned into a generic ActionFailure.
"""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

from .auth import Identity
from .errors import StoreError
from .models import TASK_STATUSES
from .revalidation import PageRevalidator
from .schemas import (
    ActionFailure,
    ActionResult,
    ActionSuccess,
    CategoryRead,
    CategorySummary,
    FailureKind,
    TaskRead,
    TaskSummary,
    TaskWithCategory,
)
from .store import TaskStore
from .utils import DASHBOARD_PATH, edit_task_path, tally_statuses, utcnow
from .validation import validate_category_form, validate_status, validate_task_form

logger = logging.getLogger(__name__)

INVALID_FORM_MESSAGE = "Invalid form data. Please check your inputs."
INVALID_CATEGORY_MESSAGE = "Invalid category selected."
TASK_NOT_FOUND_MESSAGE = "Task not found."
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again."


@dataclass
class ActionContext:
    """Everything an operation needs about the current request.

    store is None for anonymous callers; the identity gate returns before
    any operation touches it.
    """
    store: Optional[TaskStore]
    identity: Optional[Identity] = None
    revalidator: Optional[PageRevalidator] = None
    clock: Callable[[], datetime] = utcnow

    async def revalidate(self, *paths: str) -> None:
        """Signal stale pages; a failed signal never fails the operation"""
        if self.revalidator is None or self.identity is None:
            return
        try:
            await self.revalidator.revalidate(self.identity.user_id, *paths)
        except Exception:
            logger.exception(
                f"Page refresh signal failed for {', '.join(paths)}",
                extra={"user_id": self.identity.user_id},
            )

    def forget(self, *paths: str) -> None:
        if self.revalidator is not None and self.identity is not None:
            self.revalidator.discard(self.identity.user_id, *paths)


def action(*, unauthorized: str, store_failure: str, unexpected: str = UNEXPECTED_MESSAGE):
    """Wrap an operation with the identity check and failure mapping.

    The wrapped function receives the resolved Identity as its second
    argument and is only called when one is present.
    """
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(ctx: ActionContext, *args: Any, **kwargs: Any) -> ActionResult:
            identity = ctx.identity
            if identity is None:
                return ActionFailure(message=unauthorized, kind=FailureKind.UNAUTHORIZED)
            try:
                return await fn(ctx, identity, *args, **kwargs)
            except StoreError as e:
                logger.error(
                    f"{fn.__name__}: store {e.operation} failed: {e.detail}",
                    extra={"user_id": identity.user_id, "error_code": e.code},
                )
                return ActionFailure(message=store_failure, kind=FailureKind.STORE)
            except Exception:
                logger.exception(
                    f"{fn.__name__}: unexpected error",
                    extra={"user_id": identity.user_id},
                )
                return ActionFailure(message=unexpected, kind=FailureKind.UNEXPECTED)
        return wrapper
    return decorator


def _invalid_form(errors) -> ActionFailure:
    return ActionFailure(message=INVALID_FORM_MESSAGE, errors=errors, kind=FailureKind.VALIDATION)


def _not_found() -> ActionFailure:
    return ActionFailure(message=TASK_NOT_FOUND_MESSAGE, kind=FailureKind.NOT_FOUND)


async def _category_rejected(ctx: ActionContext, identity: Identity, category_id: Optional[UUID]) -> bool:
    if category_id is None:
        return False
    owned = await ctx.store.category_belongs_to(identity.user_id, category_id)
    if not owned:
        logger.warning(
            "Rejected category not owned by caller",
            extra={"user_id": identity.user_id, "category_id": category_id},
        )
    return not owned


def _task_values(task_input) -> dict:
    return {
        "title": task_input.title,
        "description": task_input.description,
        "category_id": task_input.category_id,
        "priority": task_input.priority.value,
        "due_date": task_input.due_date,
    }


@action(
    unauthorized="You must be logged in to create a task.",
    store_failure="Failed to create task. Please try again.",
)
async def create_task(ctx: ActionContext, identity: Identity, form: Any) -> ActionResult:
    """Validate a task form and insert it for the caller"""
    task_input, errors = validate_task_form(form, now=ctx.clock())
    if errors:
        return _invalid_form(errors)

    if await _category_rejected(ctx, identity, task_input.category_id):
        return ActionFailure(message=INVALID_CATEGORY_MESSAGE, kind=FailureKind.INVALID_CATEGORY)

    task = await ctx.store.insert_task(identity.user_id, _task_values(task_input))
    logger.info("Task created", extra={"user_id": identity.user_id, "task_id": task.id})

    await ctx.revalidate(DASHBOARD_PATH)
    return ActionSuccess(data=TaskRead.model_validate(task))


@action(
    unauthorized="You must be logged in to view tasks.",
    store_failure="Failed to fetch tasks.",
    unexpected="An unexpected error occurred while fetching tasks.",
)
async def get_tasks(ctx: ActionContext, identity: Identity) -> ActionResult:
    """All of the caller's tasks, newest first, with category display fields"""
    tasks = await ctx.store.list_tasks(identity.user_id)
    return ActionSuccess(data=[TaskWithCategory.model_validate(task) for task in tasks])


@action(
    unauthorized="You must be logged in to view tasks.",
    store_failure="Failed to fetch task.",
    unexpected="An unexpected error occurred while fetching the task.",
)
async def get_task_by_id(ctx: ActionContext, identity: Identity, task_id: UUID) -> ActionResult:
    task = await ctx.store.get_task(identity.user_id, task_id)
    if task is None:
        return _not_found()
    return ActionSuccess(data=TaskRead.model_validate(task))


@action(
    unauthorized="You must be logged in to update a task.",
    store_failure="Failed to update task. Please try again.",
)
async def update_task(ctx: ActionContext, identity: Identity, task_id: UUID, form: Any) -> ActionResult:
    """Replace a task's editable fields with a validated form"""
    task_input, errors = validate_task_form(form, now=ctx.clock())
    if errors:
        return _invalid_form(errors)

    if await _category_rejected(ctx, identity, task_input.category_id):
        return ActionFailure(message=INVALID_CATEGORY_MESSAGE, kind=FailureKind.INVALID_CATEGORY)

    values = _task_values(task_input)
    values["updated_at"] = ctx.clock()
    task = await ctx.store.update_task(identity.user_id, task_id, values)
    if task is None:
        return _not_found()
    logger.info("Task updated", extra={"user_id": identity.user_id, "task_id": task_id})

    await ctx.revalidate(DASHBOARD_PATH, edit_task_path(task_id))
    return ActionSuccess(data=TaskRead.model_validate(task))


@action(
    unauthorized="You must be logged in to update tasks.",
    store_failure="Failed to update task status.",
    unexpected="An unexpected error occurred while updating the task.",
)
async def update_task_status(ctx: ActionContext, identity: Identity, task_id: UUID, status: Any) -> ActionResult:
    errors = validate_status(status)
    if errors:
        return _invalid_form(errors)

    now = ctx.clock()
    values = {
        "status": status,
        "updated_at": now,
        "completed_at": now if status == "completed" else None,
    }
    updated = await ctx.store.update_task_fields(identity.user_id, task_id, values)
    if not updated:
        return _not_found()
    logger.info(
        f"Task status set to {status}",
        extra={"user_id": identity.user_id, "task_id": task_id},
    )

    await ctx.revalidate(DASHBOARD_PATH, edit_task_path(task_id))
    return ActionSuccess()


@action(
    unauthorized="You must be logged in to delete tasks.",
    store_failure="Failed to delete task.",
    unexpected="An unexpected error occurred while deleting the task.",
)
async def delete_task(ctx: ActionContext, identity: Identity, task_id: UUID) -> ActionResult:
    deleted = await ctx.store.delete_task(identity.user_id, task_id)
    if not deleted:
        return _not_found()
    logger.info("Task deleted", extra={"user_id": identity.user_id, "task_id": task_id})

    await ctx.revalidate(DASHBOARD_PATH, edit_task_path(task_id))
    ctx.forget(edit_task_path(task_id))
    return ActionSuccess()


@action(
    unauthorized="You must be logged in to view tasks.",
    store_failure="Failed to fetch task summary.",
)
async def get_task_summary(ctx: ActionContext, identity: Identity) -> ActionResult:
    """Per-status task counts for the dashboard header"""
    rows = await ctx.store.count_tasks_by_status(identity.user_id)
    return ActionSuccess(data=TaskSummary(**tally_statuses(rows, TASK_STATUSES)))


@action(
    unauthorized="You must be logged in to view categories.",
    store_failure="Failed to fetch categories.",
    unexpected="An unexpected error occurred while fetching categories.",
)
async def get_categories(ctx: ActionContext, identity: Identity) -> ActionResult:
    categories = await ctx.store.list_categories(identity.user_id)
    return ActionSuccess(data=[CategorySummary.model_validate(category) for category in categories])


@action(
    unauthorized="You must be logged in to create a category.",
    store_failure="Failed to create category. Please try again.",
)
async def create_category(ctx: ActionContext, identity: Identity, form: Any) -> ActionResult:
    category_input, errors = validate_category_form(form)
    if errors:
        return _invalid_form(errors)

    category = await ctx.store.insert_category(identity.user_id, category_input.model_dump())
    logger.info("Category created", extra={"user_id": identity.user_id, "category_id": category.id})

    await ctx.revalidate(DASHBOARD_PATH)
    return ActionSuccess(data=CategoryRead.model_validate(category))
