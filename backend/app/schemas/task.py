from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.task import Priority, TaskStatus


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = None
    status: Optional[TaskStatus] = None


class CommentCreate(BaseModel):
    content: str
