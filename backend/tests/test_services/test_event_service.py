"""Tests for EventService against the in-memory store."""

import asyncio
from datetime import timedelta

import pytest

from app.core import utcnow
from app.core.errors import AuthorizationDenied, EntityNotFound, InconsistentRecurrence, InvalidTimeRange
from app.core.materializer import RecurrenceMaterializer
from app.models.event import Event, EventType
from app.schemas.event import EventCreate, EventUpdate
from app.services.events import EventService


def next_hour():
    return utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def event_in(team=None, **overrides):
    start = next_hour()
    data = {
        "title": "Planning",
        "start_date": start,
        "end_date": start + timedelta(hours=1),
        "team_id": team.id if team is not None else None,
    }
    data.update(overrides)
    return EventCreate(**data)


def occurrences_of(store, template):
    return [e for e in store.all(Event) if e.template_id == template.id]


class TestCreateEvent:
    def test_member_creates_team_event(self, store, team, member):
        event = asyncio.run(EventService(store).create_event(member, event_in(team)))
        assert event.creator_id == member.id
        assert f"team:{team.id}" in store.lock_history

    def test_personal_event_takes_no_team_lock(self, store, team, outsider):
        event = asyncio.run(EventService(store).create_event(outsider, event_in()))
        assert event.is_personal
        assert store.lock_history == []

    def test_outsider_cannot_create_team_event(self, store, team, outsider):
        with pytest.raises(AuthorizationDenied):
            asyncio.run(EventService(store).create_event(outsider, event_in(team)))
        assert store.all(Event) == []

    def test_unknown_team(self, store, team, member):
        payload = event_in(team)
        payload.team_id = "no-such-team"
        with pytest.raises(EntityNotFound):
            asyncio.run(EventService(store).create_event(member, payload))

    def test_end_before_start_is_rejected(self, store, team, member):
        start = next_hour()
        with pytest.raises(InvalidTimeRange):
            asyncio.run(
                EventService(store).create_event(
                    member, event_in(team, start_date=start, end_date=start - timedelta(minutes=1))
                )
            )
        assert store.all(Event) == []

    def test_rule_without_flag_is_rejected(self, store, team, member):
        with pytest.raises(InconsistentRecurrence):
            asyncio.run(EventService(store).create_event(member, event_in(team, recurrence="weekly")))

    def test_bad_rule_is_rejected_at_write_time(self, store, team, member):
        with pytest.raises(InconsistentRecurrence):
            asyncio.run(
                EventService(store).create_event(member, event_in(team, is_recurring=True, recurrence="FREQ=YEARLY"))
            )


class TestUpdateAndDelete:
    def test_member_cannot_edit_owners_team_event(self, store, team, owner, member):
        event = asyncio.run(EventService(store).create_event(owner, event_in(team)))
        with pytest.raises(AuthorizationDenied):
            asyncio.run(EventService(store).update_event(member, event.id, EventUpdate(title="Mine")))

    def test_creator_edits_own_event(self, store, team, member):
        service = EventService(store)
        event = asyncio.run(service.create_event(member, event_in(team)))
        updated = asyncio.run(service.update_event(member, event.id, EventUpdate(title="Retro")))
        assert updated.title == "Retro"

    def test_update_validates_merged_event(self, store, team, member):
        service = EventService(store)
        event = asyncio.run(service.create_event(member, event_in(team)))
        with pytest.raises(InvalidTimeRange):
            asyncio.run(
                service.update_event(member, event.id, EventUpdate(end_date=event.start_date - timedelta(hours=1)))
            )

    def test_others_cannot_touch_personal_event(self, store, team, member, global_admin, outsider):
        service = EventService(store)
        event = asyncio.run(service.create_event(member, event_in()))
        with pytest.raises(AuthorizationDenied):
            asyncio.run(service.get_event(outsider, event.id))
        assert asyncio.run(service.get_event(global_admin, event.id)) == event

    def test_changing_template_rule_drops_future_occurrences(self, store, team, owner):
        service = EventService(store)
        template = asyncio.run(service.create_event(owner, event_in(team, is_recurring=True, recurrence="daily")))
        asyncio.run(RecurrenceMaterializer(store, window=timedelta(days=7)).run_tick())
        assert occurrences_of(store, template)

        updated = asyncio.run(service.update_event(owner, template.id, EventUpdate(recurrence="weekly")))

        assert updated.materialized_through is None
        assert occurrences_of(store, template) == []

    def test_renaming_template_keeps_occurrences(self, store, team, owner):
        service = EventService(store)
        template = asyncio.run(service.create_event(owner, event_in(team, is_recurring=True, recurrence="daily")))
        asyncio.run(RecurrenceMaterializer(store, window=timedelta(days=7)).run_tick())
        count = len(occurrences_of(store, template))

        asyncio.run(service.update_event(owner, template.id, EventUpdate(title="Daily sync")))

        assert len(occurrences_of(store, template)) == count

    def test_renaming_template_renames_materialized_occurrences(self, store, team, owner):
        service = EventService(store)
        template = asyncio.run(service.create_event(owner, event_in(team, is_recurring=True, recurrence="daily")))
        materializer = RecurrenceMaterializer(store, window=timedelta(days=7))
        asyncio.run(materializer.run_tick())

        asyncio.run(
            service.update_event(
                owner,
                template.id,
                EventUpdate(title="Daily sync", description="Moved to the big room", type=EventType.REMINDER),
            )
        )
        asyncio.run(materializer.run_tick())

        copies = occurrences_of(store, template)
        assert copies
        assert {o.title for o in copies} == {"Daily sync"}
        assert {o.description for o in copies} == {"Moved to the big room"}
        assert {o.type for o in copies} == {EventType.REMINDER}

    def test_deleting_template_drops_future_occurrences(self, store, team, owner):
        service = EventService(store)
        template = asyncio.run(service.create_event(owner, event_in(team, is_recurring=True, recurrence="daily")))
        asyncio.run(RecurrenceMaterializer(store, window=timedelta(days=7)).run_tick())

        asyncio.run(service.delete_event(owner, template.id))

        assert store.all(Event) == []


class TestListCalendar:
    def test_start_after_end_is_rejected(self, store, member):
        now = utcnow()
        with pytest.raises(InvalidTimeRange):
            asyncio.run(EventService(store).list_calendar(member, now, now - timedelta(days=1)))

    def test_shows_team_and_own_personal_events_only(self, store, team, owner, member, outsider):
        service = EventService(store)
        team_event = asyncio.run(service.create_event(owner, event_in(team)))
        mine = asyncio.run(service.create_event(member, event_in()))
        asyncio.run(service.create_event(outsider, event_in()))

        start = utcnow()
        visible = asyncio.run(service.list_calendar(member, start, start + timedelta(days=1)))

        assert {e.id for e in visible} == {team_event.id, mine.id}
