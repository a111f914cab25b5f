"""Factories for model instances used across tests."""

from datetime import datetime, timedelta, timezone

from app.models.event import Event
from app.models.task import Task
from app.models.team import MemberStatus, TeamMember, TeamRole
from app.models.user import User, UserRole


def make_user(name: str, role: UserRole = UserRole.MEMBER) -> User:
    return User(id=f"user-{name}", username=name, email=f"{name}@acme.io", role=role)


def make_membership(user, team, role=TeamRole.MEMBER, status=MemberStatus.ACTIVE) -> TeamMember:
    return TeamMember(id=f"m-{user.username}-{team.id}", user_id=user.id, team_id=team.id, role=role, status=status)


def make_task(team, creator, **overrides) -> Task:
    data = {"title": "Write release notes", "team_id": team.id, "creator_id": creator.id}
    data.update(overrides)
    return Task(**data)


def make_event(creator, team=None, start=None, duration=timedelta(hours=1), **overrides) -> Event:
    start = start or datetime(2026, 10, 12, 10, 0, tzinfo=timezone.utc)
    data = {
        "title": "Standup",
        "start_date": start,
        "end_date": start + duration,
        "team_id": team.id if team is not None else None,
        "creator_id": creator.id,
    }
    data.update(overrides)
    return Event(**data)
