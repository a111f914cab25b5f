"""
Task Service

Task, status and comment operations for team members. Writes take the
team lock, re-read the task inside it and authorize before touching the
store.
"""

import logging
from typing import List, Optional

from app.core.lifecycle import LifecycleManager
from app.core.permissions import AccessControl, Action, require
from app.models.comment import Comment
from app.models.task import Priority, Task, TaskStatus
from app.models.team import Team
from app.models.user import User
from app.repositories.store import EntityStore
from app.schemas.task import CommentCreate, TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)

# Explicit nulls for these are ignored rather than written
_REQUIRED_FIELDS = frozenset({"title", "priority", "status"})


class TaskService:
    def __init__(self, store: EntityStore):
        self.store = store
        self.access = AccessControl(store)
        self.lifecycle = LifecycleManager(store)

    async def get_task(self, actor: User, task_id: str) -> Task:
        task = await self.store.get(Task, task_id)
        require(await self.access.authorize(actor, Action.TASK_READ, task))
        return task

    async def list_tasks(self, actor: User, team_id: str, status: Optional[TaskStatus] = None) -> List[Task]:
        team = await self.store.get(Team, team_id)
        require(await self.access.authorize(actor, Action.TEAM_READ, team))
        return await self.store.list_tasks(team.id, status=status)

    async def create_task(self, actor: User, team_id: str, task_in: TaskCreate) -> Task:
        async with self.store.team_lock(team_id):
            team = await self.store.get(Team, team_id)
            task = Task(
                title=task_in.title,
                description=task_in.description,
                priority=task_in.priority,
                due_date=task_in.due_date,
                assignee_id=task_in.assignee_id,
                team_id=team.id,
                creator_id=actor.id,
            )
            require(await self.access.authorize(actor, Action.TASK_CREATE, task))
            await self.lifecycle.validate_assignee(team.id, task.assignee_id)
            task = await self.store.create(task)
        logger.info(f"Task {task.id} created in team {team_id} by user {actor.id}")
        return task

    async def update_task(self, actor: User, task_id: str, task_in: TaskUpdate) -> Task:
        """
        Apply a partial update.

        A status change, a reassignment and plain field edits are authorized
        as separate actions; all of them must pass before anything is written.
        """
        task = await self.store.get(Task, task_id)
        async with self.store.team_lock(task.team_id):
            task = await self.store.get(Task, task_id)
            fields = {
                k: v
                for k, v in task_in.model_dump(exclude_unset=True).items()
                if v is not None or k not in _REQUIRED_FIELDS
            }
            new_status = fields.pop("status", None)
            reassign = "assignee_id" in fields and fields["assignee_id"] != task.assignee_id
            if not reassign:
                fields.pop("assignee_id", None)
            if not fields and (new_status is None or new_status == task.status):
                require(await self.access.authorize(actor, Action.TASK_READ, task))
                return task

            if new_status is not None and new_status != task.status:
                require(await self.access.authorize(actor, Action.TASK_CHANGE_STATUS, task))
            if reassign:
                require(await self.access.authorize(actor, Action.TASK_REASSIGN, task))
                await self.lifecycle.validate_assignee(task.team_id, fields["assignee_id"])
            if set(fields) - {"assignee_id"}:
                require(await self.access.authorize(actor, Action.TASK_UPDATE, task))

            if isinstance(fields.get("priority"), Priority):
                fields["priority"] = fields["priority"].value
            if new_status is not None and new_status != task.status:
                return await self.lifecycle.apply_task_transition(task, new_status, fields=fields)
            return await self.store.update(task, fields)

    async def change_status(self, actor: User, task_id: str, new_status: TaskStatus) -> Task:
        task = await self.store.get(Task, task_id)
        async with self.store.team_lock(task.team_id):
            task = await self.store.get(Task, task_id)
            require(await self.access.authorize(actor, Action.TASK_CHANGE_STATUS, task))
            return await self.lifecycle.apply_task_transition(task, new_status)

    async def delete_task(self, actor: User, task_id: str) -> None:
        task = await self.store.get(Task, task_id)
        async with self.store.team_lock(task.team_id):
            task = await self.store.get(Task, task_id)
            require(await self.access.authorize(actor, Action.TASK_DELETE, task))
            await self.store.delete_comments(task.id)
            await self.store.delete(task)
        logger.info(f"Task {task_id} deleted by user {actor.id}")

    async def add_comment(self, actor: User, task_id: str, comment_in: CommentCreate) -> Comment:
        task = await self.store.get(Task, task_id)
        async with self.store.team_lock(task.team_id):
            task = await self.store.get(Task, task_id)
            require(await self.access.authorize(actor, Action.TASK_COMMENT, task))
            return await self.store.create(
                Comment(content=comment_in.content, task_id=task.id, author_id=actor.id)
            )

    async def list_comments(self, actor: User, task_id: str) -> List[Comment]:
        task = await self.get_task(actor, task_id)
        return await self.store.list_comments(task.id)
