"""
Event Service

Team and personal calendar events. Team events are written under the team
lock; personal events belong to their creator and need no lock.

Changing the timing or rule of a recurrence template, or deleting it, drops
its occurrences from now on, and the next materializer tick regenerates them
from the new rule. Title, description and type edits are copied onto the
future occurrences instead.
"""

import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from datetime import datetime
from typing import Any, Dict, List

from app.core import ensure_utc, utcnow
from app.core.errors import InvalidTimeRange
from app.core.lifecycle import validate_event
from app.core.permissions import AccessControl, Action, require
from app.models.event import Event
from app.models.team import Team
from app.models.user import User
from app.repositories.store import EntityStore
from app.schemas.event import EventCreate, EventUpdate

logger = logging.getLogger(__name__)

# Template fields whose change invalidates materialized occurrences
_SERIES_FIELDS = frozenset({"start_date", "end_date", "is_recurring", "recurrence"})
# Template fields each occurrence carries a copy of
_DISPLAY_FIELDS = frozenset({"title", "description", "type"})
# Explicit nulls for these are ignored rather than written
_REQUIRED_FIELDS = frozenset({"title", "start_date", "end_date", "type", "is_recurring", "recurrence"})


class EventService:
    def __init__(self, store: EntityStore):
        self.store = store
        self.access = AccessControl(store)

    async def get_event(self, actor: User, event_id: str) -> Event:
        event = await self.store.get(Event, event_id)
        require(await self.access.authorize(actor, Action.EVENT_READ, event))
        return event

    async def create_event(self, actor: User, event_in: EventCreate) -> Event:
        event = Event(**event_in.model_dump(), creator_id=actor.id)
        validate_event(event)

        async with self._lock_for(event):
            if event.team_id is not None:
                await self.store.get(Team, event.team_id)
            require(await self.access.authorize(actor, Action.EVENT_CREATE, event))
            event = await self.store.create(event)
        logger.info(
            f"Event {event.id} created by user {actor.id}"
            + (f" in team {event.team_id}" if event.team_id else " (personal)")
            + (f" recurring {event.recurrence!r}" if event.is_recurring else "")
        )
        return event

    async def update_event(self, actor: User, event_id: str, event_in: EventUpdate) -> Event:
        event = await self.store.get(Event, event_id)
        async with self._lock_for(event):
            event = await self.store.get(Event, event_id)
            require(await self.access.authorize(actor, Action.EVENT_UPDATE, event))

            fields = {
                k: v
                for k, v in event_in.model_dump(exclude_unset=True).items()
                if v is not None or k not in _REQUIRED_FIELDS
            }
            if not fields:
                return event
            validate_event(event.model_copy(update=fields))

            reset_series = event.is_template and bool(_SERIES_FIELDS & set(fields))
            if reset_series:
                fields["materialized_through"] = None
            if "type" in fields:
                fields["type"] = fields["type"].value

            updated = await self.store.update(event, fields)
            if reset_series:
                await self._drop_future_occurrences(event)
            elif event.is_template and _DISPLAY_FIELDS & set(fields):
                copied = {k: fields[k] for k in _DISPLAY_FIELDS & set(fields)}
                await self._refresh_future_occurrences(event, copied)
            return updated

    async def delete_event(self, actor: User, event_id: str) -> None:
        event = await self.store.get(Event, event_id)
        async with self._lock_for(event):
            event = await self.store.get(Event, event_id)
            require(await self.access.authorize(actor, Action.EVENT_DELETE, event))
            await self.store.delete(event)
            if event.is_template:
                await self._drop_future_occurrences(event)
        logger.info(f"Event {event_id} deleted by user {actor.id}")

    async def list_calendar(self, actor: User, start: datetime, end: datetime) -> List[Event]:
        """Events of the actor's active teams and the actor's personal events overlapping [start, end]."""
        start = ensure_utc(start)
        end = ensure_utc(end)
        if start > end:
            raise InvalidTimeRange(start, end)
        return await self.store.list_calendar(actor.id, start, end)

    def _lock_for(self, event: Event) -> AbstractAsyncContextManager:
        if event.team_id is None:
            return nullcontext()
        return self.store.team_lock(event.team_id)

    async def _drop_future_occurrences(self, template: Event) -> None:
        removed = await self.store.delete_future_occurrences(template.id, utcnow())
        if removed:
            logger.info(f"Dropped {removed} future occurrence(s) of template {template.id}")

    async def _refresh_future_occurrences(self, template: Event, fields: Dict[str, Any]) -> None:
        changed = await self.store.update_future_occurrences(template.id, utcnow(), fields)
        if changed:
            logger.info(f"Copied {sorted(fields)} to {changed} future occurrence(s) of template {template.id}")
