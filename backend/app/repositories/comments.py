"""
Comment Repository

Centralizes all database operations for task comments.
"""

from typing import List

from app.models.comment import Comment
from app.repositories.base import BaseRepository


class CommentRepository(BaseRepository[Comment]):
    """Repository for comment database operations."""

    collection_name = "comments"
    model_class = Comment

    async def list_by_task(self, task_id: str, limit: int = 500) -> List[Comment]:
        """List comments of a task, oldest first."""
        return await self.find_many({"task_id": task_id}, limit=limit, sort_by="created_at")

    async def delete_by_task(self, task_id: str) -> int:
        """Delete all comments of a task."""
        return await self.delete_many({"task_id": task_id})
