import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

TASK_STATUSES = ("todo", "in_progress", "completed", "cancelled")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")

_STATUS_CHECK = "status IN ('todo', 'in_progress', 'completed', 'cancelled')"
_PRIORITY_CHECK = "priority IN ('low', 'medium', 'high', 'urgent')"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(50), nullable=False)
    color = Column(String(7), nullable=False, server_default="#6366f1")
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="tasks_status_check"),
        CheckConstraint(_PRIORITY_CHECK, name="tasks_priority_check"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    # No ON DELETE rule: removing a category never touches its tasks
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, server_default="todo")
    priority = Column(String(10), nullable=False, server_default="medium")
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    category = relationship(Category)

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"


class Subtask(Base):
    __tablename__ = "subtasks"
    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="subtasks_status_check"),
        CheckConstraint(_PRIORITY_CHECK, name="subtasks_priority_check"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id = Column(Uuid, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Uuid, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, server_default="todo")
    priority = Column(String(10), nullable=False, server_default="medium")
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    order_index = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Subtask(id={self.id}, task_id={self.task_id}, order_index={self.order_index})>"
