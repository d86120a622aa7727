"""Owner-scoped data access for tasks and categories.

Every query filters on ``user_id``; nothing in here reads or writes another
user's rows. SQLAlchemy failures are rolled back and re-raised as StoreError
so the action layer only has one exception type to translate.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import joinedload

from .errors import StoreError
from .models import Category, Task


class TaskStore:
    """Data-access handle bound to one AsyncSession"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(operation, str(e)) from e

    # Categories

    async def category_belongs_to(self, owner_id: UUID, category_id: UUID) -> bool:
        """Check that a category exists and is owned by owner_id"""
        async with self._guard("category lookup"):
            result = await self.db.execute(
                select(Category.id).filter(
                    Category.id == category_id,
                    Category.user_id == owner_id,
                )
            )
            return result.scalar_one_or_none() is not None

    async def list_categories(self, owner_id: UUID) -> List[Category]:
        async with self._guard("category list"):
            result = await self.db.execute(
                select(Category)
                .filter(Category.user_id == owner_id)
                .order_by(Category.name)
            )
            return list(result.scalars().all())

    async def insert_category(self, owner_id: UUID, values: Dict[str, Any]) -> Category:
        async with self._guard("category insert"):
            db_category = Category(**values, user_id=owner_id)
            self.db.add(db_category)
            await self.db.commit()
            await self.db.refresh(db_category)
            return db_category

    # Tasks

    async def insert_task(self, owner_id: UUID, values: Dict[str, Any]) -> Task:
        """Insert a task; id, status and timestamps come from the store"""
        async with self._guard("task insert"):
            db_task = Task(**values, user_id=owner_id)
            self.db.add(db_task)
            await self.db.commit()
            await self.db.refresh(db_task)
            return db_task

    async def list_tasks(self, owner_id: UUID) -> List[Task]:
        """Owner's tasks, newest first, with their category joined in"""
        async with self._guard("task list"):
            result = await self.db.execute(
                select(Task)
                .options(joinedload(Task.category))
                .filter(Task.user_id == owner_id)
                .order_by(Task.created_at.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def get_task(self, owner_id: UUID, task_id: UUID) -> Optional[Task]:
        async with self._guard("task fetch"):
            result = await self.db.execute(
                select(Task)
                .filter(Task.id == task_id, Task.user_id == owner_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def update_task(
        self,
        owner_id: UUID,
        task_id: UUID,
        values: Dict[str, Any],
    ) -> Optional[Task]:
        """Single UPDATE ... RETURNING scoped by id and owner; None when nothing matched"""
        async with self._guard("task update"):
            result = await self.db.execute(
                update(Task)
                .where(Task.id == task_id, Task.user_id == owner_id)
                .values(**values)
                .returning(Task)
                .execution_options(populate_existing=True)
            )
            db_task = result.scalar_one_or_none()
            await self.db.commit()
            return db_task

    async def update_task_fields(
        self,
        owner_id: UUID,
        task_id: UUID,
        values: Dict[str, Any],
    ) -> int:
        """Single UPDATE scoped by id and owner; returns affected row count"""
        async with self._guard("task update"):
            result = await self.db.execute(
                update(Task)
                .where(Task.id == task_id, Task.user_id == owner_id)
                .values(**values)
            )
            await self.db.commit()
            return result.rowcount

    async def delete_task(self, owner_id: UUID, task_id: UUID) -> int:
        """Single DELETE scoped by id and owner; returns affected row count"""
        async with self._guard("task delete"):
            result = await self.db.execute(
                delete(Task).where(Task.id == task_id, Task.user_id == owner_id)
            )
            await self.db.commit()
            return result.rowcount

    async def count_tasks_by_status(self, owner_id: UUID) -> List[Tuple[str, int]]:
        async with self._guard("task count"):
            result = await self.db.execute(
                select(Task.status, func.count(Task.id))
                .filter(Task.user_id == owner_id)
                .group_by(Task.status)
            )
            return [(status, count) for status, count in result.all()]
