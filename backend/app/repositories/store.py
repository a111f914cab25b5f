"""
Entity Store

Single entry point the core uses to reach MongoDB. Wraps the per-collection
repositories, bounds every call with a timeout and translates driver errors
into the core's store error taxonomy (EntityNotFound, StoreConflict,
StoreUnavailable).
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
)

from app.core.config import settings
from app.core.errors import (
    DuplicateOccurrence,
    EntityNotFound,
    StoreConflict,
    StoreUnavailable,
)
from app.models.comment import Comment
from app.models.event import Event
from app.models.task import Task, TaskStatus
from app.models.team import Team, TeamMember
from app.models.user import User
from app.repositories.base import BaseRepository
from app.repositories.comments import CommentRepository
from app.repositories.distributed_locks import DistributedLocksRepository
from app.repositories.events import EventRepository
from app.repositories.tasks import TaskRepository
from app.repositories.team_members import TeamMemberRepository
from app.repositories.teams import TeamRepository
from app.repositories.users import UserRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")

# MongoDB server error code for a write conflict inside a transaction
_WRITE_CONFLICT = 112
_LOCK_POLL_SECONDS = 0.05
_PURGE_LIMIT = 100_000


class EntityStore:
    """Concurrency-safe access to users, teams, memberships, tasks, events and comments."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        timeout: float = settings.STORE_TIMEOUT_SECONDS,
        lock_ttl_seconds: int = settings.TEAM_LOCK_TTL_SECONDS,
        lock_wait_seconds: float = settings.TEAM_LOCK_WAIT_SECONDS,
    ):
        self.timeout = timeout
        self.lock_ttl_seconds = lock_ttl_seconds
        self.lock_wait_seconds = lock_wait_seconds

        self.users = UserRepository(db)
        self.teams = TeamRepository(db)
        self.members = TeamMemberRepository(db)
        self.tasks = TaskRepository(db)
        self.events = EventRepository(db)
        self.comments = CommentRepository(db)
        self.locks = DistributedLocksRepository(db)

        self._repos: Dict[Type[BaseModel], BaseRepository] = {
            User: self.users,
            Team: self.teams,
            TeamMember: self.members,
            Task: self.tasks,
            Event: self.events,
            Comment: self.comments,
        }

    # ---- error translation ----

    async def _call(self, awaitable: Awaitable[R]) -> R:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Store call timed out after {self.timeout}s") from e
        except DuplicateKeyError as e:
            raise StoreConflict(f"Duplicate key: {e.details or e}") from e
        except (ConnectionFailure, ExecutionTimeout) as e:
            raise StoreUnavailable(str(e)) from e
        except OperationFailure as e:
            if e.code == _WRITE_CONFLICT or e.has_error_label("TransientTransactionError"):
                raise StoreConflict(str(e)) from e
            raise StoreUnavailable(str(e)) from e
        except PyMongoError as e:
            raise StoreUnavailable(str(e)) from e

    def _repo(self, model_cls: Type[BaseModel]) -> BaseRepository:
        try:
            return self._repos[model_cls]
        except KeyError:
            raise TypeError(f"No repository registered for {model_cls.__name__}") from None

    # ---- generic CRUD ----

    async def get(self, model_cls: Type[M], entity_id: str) -> M:
        entity = await self._call(self._repo(model_cls).get_by_id(entity_id))
        if entity is None:
            raise EntityNotFound(model_cls.__name__, entity_id)
        return entity

    async def create(self, entity: M) -> M:
        return await self._call(self._repo(type(entity)).create(entity))

    async def update(
        self,
        entity: M,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
        push: Optional[Dict[str, Any]] = None,
    ) -> M:
        """
        Apply ``fields`` to the stored entity and return the stored result.

        With ``expected``, the write is a compare-and-set: if the stored
        document no longer matches, StoreConflict is raised and nothing is
        written.
        """
        data = dict(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        repo = self._repo(type(entity))
        updated = await self._call(repo.update(entity.id, data, expected=expected, push=push))
        if updated is None:
            if expected:
                raise StoreConflict(
                    f"{type(entity).__name__} {entity.id} changed concurrently (expected {expected})"
                )
            raise EntityNotFound(type(entity).__name__, entity.id)
        return updated

    async def delete(self, entity: BaseModel) -> bool:
        return await self._call(self._repo(type(entity)).delete(entity.id))

    # ---- lookups ----

    async def find_membership(self, user_id: str, team_id: str) -> Optional[TeamMember]:
        return await self._call(self.members.find_membership(user_id, team_id))

    async def list_active_members(self, team_id: str) -> List[TeamMember]:
        return await self._call(self.members.list_active(team_id))

    async def list_members(self, team_id: str) -> List[TeamMember]:
        return await self._call(self.members.list_by_team(team_id))

    async def list_user_teams(self, user_id: str) -> List[Team]:
        """Teams where the user holds an ACTIVE membership."""
        team_ids = await self._call(self.members.list_active_team_ids(user_id))
        return await self._call(self.teams.list_by_ids(team_ids))

    async def list_templates(self) -> List[Event]:
        return await self._call(self.events.list_templates())

    async def list_occurrences(
        self, template_id: str, window_start: datetime, window_end: datetime
    ) -> List[Event]:
        return await self._call(self.events.list_occurrences(template_id, window_start, window_end))

    async def list_calendar(self, user_id: str, start: datetime, end: datetime) -> List[Event]:
        team_ids = await self._call(self.members.list_active_team_ids(user_id))
        return await self._call(self.events.list_calendar(user_id, team_ids, start, end))

    async def list_tasks(self, team_id: str, status: Optional[TaskStatus] = None) -> List[Task]:
        return await self._call(self.tasks.list_by_team(team_id, status=status))

    async def list_comments(self, task_id: str) -> List[Comment]:
        return await self._call(self.comments.list_by_task(task_id))

    async def delete_comments(self, task_id: str) -> int:
        return await self._call(self.comments.delete_by_task(task_id))

    async def delete_future_occurrences(self, template_id: str, start: datetime) -> int:
        return await self._call(self.events.delete_occurrences_from(template_id, start))

    async def update_future_occurrences(self, template_id: str, start: datetime, fields: Dict[str, Any]) -> int:
        data = dict(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        return await self._call(self.events.update_occurrences_from(template_id, start, data))

    async def create_occurrence(self, occurrence: Event) -> Event:
        """
        Insert a materialized occurrence.

        The unique index on (template_id, occurrence_start) turns a racing
        duplicate into DuplicateOccurrence instead of a second row.
        """
        try:
            return await self._call(self.events.create(occurrence))
        except StoreConflict as e:
            if isinstance(e.__cause__, DuplicateKeyError):
                raise DuplicateOccurrence(occurrence.template_id, occurrence.occurrence_start) from e
            raise

    async def purge_team(self, team: Team) -> None:
        """Delete a team together with its memberships, tasks, comments and events."""
        tasks = await self._call(self.tasks.find_many({"team_id": team.id}, limit=_PURGE_LIMIT))
        task_ids = [t.id for t in tasks]
        if task_ids:
            await self._call(self.comments.delete_many({"task_id": {"$in": task_ids}}))
        await self._call(self.tasks.delete_many({"team_id": team.id}))
        await self._call(self.events.delete_by_team(team.id))
        await self._call(self.members.delete_by_team(team.id))
        await self._call(self.teams.delete(team.id))
        logger.info(f"Purged team {team.id} ({len(task_ids)} tasks)")

    # ---- locking ----

    async def try_lock(self, name: str, ttl_seconds: int) -> Optional[str]:
        """Acquire a named lock once. Returns the holder id, or None if it is held elsewhere."""
        holder_id = str(uuid.uuid4())
        acquired = await self._call(self.locks.acquire_lock(name, holder_id, ttl_seconds=ttl_seconds))
        return holder_id if acquired else None

    async def release_lock(self, name: str, holder_id: str) -> None:
        await self._call(self.locks.release_lock(name, holder_id))

    @asynccontextmanager
    async def team_lock(self, team_id: str) -> AsyncIterator[None]:
        """
        Serialize team-scoped writes.

        Membership reads made inside the block see every write made under the
        same lock before it, so an authorization decision cannot go stale
        before its mutation lands. Raises StoreConflict if the lock stays busy
        for longer than lock_wait_seconds.
        """
        name = f"team:{team_id}"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.lock_wait_seconds
        holder_id = await self.try_lock(name, self.lock_ttl_seconds)
        while holder_id is None:
            if loop.time() >= deadline:
                raise StoreConflict(f"Team {team_id} is busy, retry later")
            await asyncio.sleep(_LOCK_POLL_SECONDS)
            holder_id = await self.try_lock(name, self.lock_ttl_seconds)
        try:
            yield
        finally:
            try:
                await self.release_lock(name, holder_id)
            except StoreUnavailable:
                logger.warning(f"Could not release lock {name}; it expires in {self.lock_ttl_seconds}s")
