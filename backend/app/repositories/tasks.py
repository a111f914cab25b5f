"""
Task Repository

Centralizes all database operations for tasks.
"""

from typing import List, Optional

from app.models.task import Task, TaskStatus
from app.repositories.base import BaseRepository


class TaskRepository(BaseRepository[Task]):
    """Repository for task database operations."""

    collection_name = "tasks"
    model_class = Task

    async def list_by_team(
        self,
        team_id: str,
        status: Optional[TaskStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Task]:
        """List tasks of a team, newest first."""
        query = {"team_id": team_id}
        if status is not None:
            query["status"] = status.value
        return await self.find_many(query, skip=skip, limit=limit, sort_by="created_at", sort_order=-1)

