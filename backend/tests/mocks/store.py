"""In-memory stand-in for EntityStore, used by service, materializer and scheduler tests."""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from app.core import ensure_utc
from app.core.errors import DuplicateOccurrence, EntityNotFound, StoreConflict
from app.models.comment import Comment
from app.models.event import Event
from app.models.task import Task
from app.models.team import MemberStatus, Team, TeamMember
from app.models.user import User


class InMemoryStore:
    """Implements the EntityStore interface over plain dicts.

    ``fail(method, error)`` makes the next call of ``method`` raise ``error``;
    ``fail_for(method, predicate, error)`` raises for every call whose first
    argument matches ``predicate``.
    """

    def __init__(self):
        self.rows: Dict[Type[BaseModel], Dict[str, BaseModel]] = {
            User: {},
            Team: {},
            TeamMember: {},
            Task: {},
            Event: {},
            Comment: {},
        }
        self.locks: Dict[str, str] = {}
        self.lock_history: List[str] = []
        self._team_locks: Dict[str, asyncio.Lock] = {}
        self._failures: Dict[str, list] = {}

    # ---- failure injection ----

    def fail(self, method: str, error: Exception) -> None:
        self._failures.setdefault(method, []).append((None, error, True))

    def fail_for(self, method: str, predicate, error: Exception) -> None:
        self._failures.setdefault(method, []).append((predicate, error, False))

    def _maybe_fail(self, method: str, arg: Any = None) -> None:
        for entry in list(self._failures.get(method, [])):
            predicate, error, once = entry
            if predicate is None or predicate(arg):
                if once:
                    self._failures[method].remove(entry)
                raise error

    # ---- helpers for tests ----

    def add(self, *entities: BaseModel) -> None:
        for entity in entities:
            self.rows[type(entity)][entity.id] = entity.model_copy(deep=True)

    def all(self, model_cls: Type[BaseModel]) -> List[BaseModel]:
        return list(self.rows[model_cls].values())

    # ---- generic CRUD ----

    async def get(self, model_cls, entity_id):
        self._maybe_fail("get", entity_id)
        entity = self.rows[model_cls].get(entity_id)
        if entity is None:
            raise EntityNotFound(model_cls.__name__, entity_id)
        return entity.model_copy(deep=True)

    async def create(self, entity):
        self._maybe_fail("create", entity)
        table = self.rows[type(entity)]
        if entity.id in table:
            raise StoreConflict(f"Duplicate key: {entity.id}")
        if isinstance(entity, TeamMember) and self._membership(entity.user_id, entity.team_id):
            raise StoreConflict(f"Duplicate key: {entity.user_id}/{entity.team_id}")
        table[entity.id] = entity.model_copy(deep=True)
        return entity

    async def update(self, entity, fields, expected=None, push=None):
        self._maybe_fail("update", entity)
        table = self.rows[type(entity)]
        stored = table.get(entity.id)
        if stored is None:
            if expected:
                raise StoreConflict(f"{type(entity).__name__} {entity.id} changed concurrently")
            raise EntityNotFound(type(entity).__name__, entity.id)
        if expected and any(getattr(stored, k) != v for k, v in expected.items()):
            raise StoreConflict(f"{type(entity).__name__} {entity.id} changed concurrently")

        data = stored.model_dump()
        data.update(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        for key, op in (push or {}).items():
            data[key] = list(data.get(key) or []) + list(op["$each"])
        updated = type(entity).model_validate(data)
        table[entity.id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, entity):
        self._maybe_fail("delete", entity)
        return self.rows[type(entity)].pop(entity.id, None) is not None

    # ---- lookups ----

    def _membership(self, user_id, team_id) -> Optional[TeamMember]:
        for member in self.rows[TeamMember].values():
            if member.user_id == user_id and member.team_id == team_id:
                return member
        return None

    async def find_membership(self, user_id, team_id):
        self._maybe_fail("find_membership", user_id)
        member = self._membership(user_id, team_id)
        return member.model_copy(deep=True) if member else None

    async def list_members(self, team_id):
        return [m.model_copy(deep=True) for m in self.rows[TeamMember].values() if m.team_id == team_id]

    async def list_active_members(self, team_id):
        self._maybe_fail("list_active_members", team_id)
        return [m for m in await self.list_members(team_id) if m.status == MemberStatus.ACTIVE]

    async def list_tasks(self, team_id, status=None):
        return [
            t.model_copy(deep=True)
            for t in self.rows[Task].values()
            if t.team_id == team_id and (status is None or t.status == status)
        ]

    async def list_user_teams(self, user_id):
        team_ids = {
            m.team_id
            for m in self.rows[TeamMember].values()
            if m.user_id == user_id and m.status == MemberStatus.ACTIVE
        }
        return sorted(
            (t.model_copy(deep=True) for t in self.rows[Team].values() if t.id in team_ids),
            key=lambda t: t.name,
        )

    async def list_templates(self):
        self._maybe_fail("list_templates")
        return sorted(
            (e.model_copy(deep=True) for e in self.rows[Event].values() if e.is_recurring),
            key=lambda e: e.created_at,
        )

    async def list_occurrences(self, template_id, window_start, window_end):
        self._maybe_fail("list_occurrences", template_id)
        return sorted(
            (
                e.model_copy(deep=True)
                for e in self.rows[Event].values()
                if e.template_id == template_id
                and ensure_utc(window_start) <= ensure_utc(e.occurrence_start) <= ensure_utc(window_end)
            ),
            key=lambda e: e.occurrence_start,
        )

    async def list_calendar(self, user_id, start, end):
        team_ids = {
            m.team_id
            for m in self.rows[TeamMember].values()
            if m.user_id == user_id and m.status == MemberStatus.ACTIVE
        }
        visible = []
        for e in self.rows[Event].values():
            mine = e.team_id in team_ids or (e.team_id is None and e.creator_id == user_id)
            overlaps = ensure_utc(e.start_date) <= end and ensure_utc(e.end_date) >= start
            shown = not e.is_recurring or e.materialized_through is None
            if mine and overlaps and shown:
                visible.append(e.model_copy(deep=True))
        return sorted(visible, key=lambda e: e.start_date)

    async def list_comments(self, task_id):
        return [c.model_copy(deep=True) for c in self.rows[Comment].values() if c.task_id == task_id]

    async def delete_comments(self, task_id):
        doomed = [c.id for c in self.rows[Comment].values() if c.task_id == task_id]
        for cid in doomed:
            del self.rows[Comment][cid]
        return len(doomed)

    async def delete_future_occurrences(self, template_id, start):
        doomed = [
            e.id
            for e in self.rows[Event].values()
            if e.template_id == template_id and ensure_utc(e.occurrence_start) >= start
        ]
        for eid in doomed:
            del self.rows[Event][eid]
        return len(doomed)

    async def update_future_occurrences(self, template_id, start, fields):
        changed = 0
        for eid, e in list(self.rows[Event].items()):
            if e.template_id == template_id and ensure_utc(e.occurrence_start) >= start:
                data = e.model_dump()
                data.update(fields)
                data["updated_at"] = datetime.now(timezone.utc)
                self.rows[Event][eid] = Event.model_validate(data)
                changed += 1
        return changed

    async def create_occurrence(self, occurrence):
        self._maybe_fail("create_occurrence", occurrence)
        for e in self.rows[Event].values():
            if e.template_id == occurrence.template_id and ensure_utc(e.occurrence_start) == ensure_utc(
                occurrence.occurrence_start
            ):
                raise DuplicateOccurrence(occurrence.template_id, occurrence.occurrence_start)
        return await self.create(occurrence)

    async def purge_team(self, team):
        task_ids = {t.id for t in self.rows[Task].values() if t.team_id == team.id}
        for model_cls, belongs in (
            (Comment, lambda c: c.task_id in task_ids),
            (Task, lambda t: t.team_id == team.id),
            (Event, lambda e: e.team_id == team.id),
            (TeamMember, lambda m: m.team_id == team.id),
        ):
            for key in [k for k, v in self.rows[model_cls].items() if belongs(v)]:
                del self.rows[model_cls][key]
        self.rows[Team].pop(team.id, None)

    # ---- locking ----

    async def try_lock(self, name, ttl_seconds):
        self._maybe_fail("try_lock", name)
        if name in self.locks:
            return None
        holder_id = str(uuid.uuid4())
        self.locks[name] = holder_id
        self.lock_history.append(name)
        return holder_id

    async def release_lock(self, name, holder_id):
        if self.locks.get(name) == holder_id:
            del self.locks[name]

    @asynccontextmanager
    async def team_lock(self, team_id):
        lock = self._team_locks.setdefault(team_id, asyncio.Lock())
        async with lock:
            self.lock_history.append(f"team:{team_id}")
            yield
