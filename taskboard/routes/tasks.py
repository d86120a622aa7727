from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from .. import actions
from ..actions import ActionContext
from ..dependencies import get_action_context
from ..schemas import StatusUpdate
from .responses import result_response

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/")
async def create_task(
    form: Dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    """Create a new task"""
    result = await actions.create_task(ctx, form)
    return result_response(result, success_status=status.HTTP_201_CREATED)


@router.get("/")
async def get_tasks(ctx: ActionContext = Depends(get_action_context)):
    """Get all of the caller's tasks with their categories"""
    return result_response(await actions.get_tasks(ctx))


@router.get("/summary")
async def get_task_summary(ctx: ActionContext = Depends(get_action_context)):
    """Count the caller's tasks by status"""
    return result_response(await actions.get_task_summary(ctx))


@router.get("/{task_id}")
async def get_task(
    task_id: UUID,
    ctx: ActionContext = Depends(get_action_context),
):
    """Get a specific task by ID"""
    return result_response(await actions.get_task_by_id(ctx, task_id))


@router.put("/{task_id}")
async def update_task(
    task_id: UUID,
    form: Dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    """Update a specific task"""
    return result_response(await actions.update_task(ctx, task_id, form))


@router.patch("/{task_id}/status")
async def update_task_status(
    task_id: UUID,
    update: StatusUpdate,
    ctx: ActionContext = Depends(get_action_context),
):
    """Move a task to another status"""
    return result_response(await actions.update_task_status(ctx, task_id, update.status))


@router.delete("/{task_id}")
async def delete_task(
    task_id: UUID,
    ctx: ActionContext = Depends(get_action_context),
):
    """Delete a specific task"""
    return result_response(await actions.delete_task(ctx, task_id))
