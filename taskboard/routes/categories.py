from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status

from .. import actions
from ..actions import ActionContext
from ..dependencies import get_action_context
from .responses import result_response

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/")
async def get_categories(ctx: ActionContext = Depends(get_action_context)):
    """Get the caller's categories ordered by name"""
    return result_response(await actions.get_categories(ctx))


@router.post("/")
async def create_category(
    form: Dict[str, Any] = Body(...),
    ctx: ActionContext = Depends(get_action_context),
):
    """Create a new category"""
    result = await actions.create_category(ctx, form)
    return result_response(result, success_status=status.HTTP_201_CREATED)
