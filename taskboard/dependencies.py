from typing import AsyncGenerator, Optional

from fastapi import Depends, Request

from . import db
from .actions import ActionContext
from .auth import Identity, get_identity
from .revalidation import PageRevalidator
from .store import TaskStore


async def get_store(
    identity: Optional[Identity] = Depends(get_identity),
) -> AsyncGenerator[Optional[TaskStore], None]:
    """Open a session only for an authenticated caller"""
    if identity is None:
        yield None
        return
    async with db.session_scope() as session:
        yield TaskStore(session)


def get_revalidator(request: Request) -> PageRevalidator:
    return request.app.state.revalidator


async def get_action_context(
    identity: Optional[Identity] = Depends(get_identity),
    store: Optional[TaskStore] = Depends(get_store),
    revalidator: PageRevalidator = Depends(get_revalidator),
) -> ActionContext:
    """Dependency: the explicit context every operation is called with"""
    return ActionContext(store=store, identity=identity, revalidator=revalidator)
