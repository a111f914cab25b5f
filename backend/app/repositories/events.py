"""
Event Repository

Centralizes all database operations for events, recurrence templates and
their materialized occurrences.
"""

from datetime import datetime
from typing import Any, Dict, List

from app.models.event import Event
from app.repositories.base import BaseRepository

_MAX_OCCURRENCES = 10_000
_MAX_TEMPLATES = 50_000


class EventRepository(BaseRepository[Event]):
    """Repository for event database operations."""

    collection_name = "events"
    model_class = Event

    async def list_templates(self, limit: int = _MAX_TEMPLATES) -> List[Event]:
        """Every recurrence template, oldest first."""
        return await self.find_many({"is_recurring": True}, limit=limit, sort_by="created_at")

    async def list_occurrences(
        self, template_id: str, window_start: datetime, window_end: datetime
    ) -> List[Event]:
        """Occurrences of a template whose slot starts inside [window_start, window_end]."""
        return await self.find_many(
            {
                "template_id": template_id,
                "occurrence_start": {"$gte": window_start, "$lte": window_end},
            },
            limit=_MAX_OCCURRENCES,
            sort_by="occurrence_start",
        )

    async def list_calendar(
        self,
        user_id: str,
        team_ids: List[str],
        start: datetime,
        end: datetime,
        limit: int = 1000,
    ) -> List[Event]:
        """
        Events visible on a user's calendar that overlap [start, end].

        Covers team events of the given teams plus the user's personal events.
        Templates are left out once materialization has begun for them.
        """
        query = {
            "$and": [
                {
                    "$or": [
                        {"team_id": {"$in": team_ids}},
                        {"team_id": None, "creator_id": user_id},
                    ]
                },
                {"start_date": {"$lte": end}},
                {"end_date": {"$gte": start}},
                {"$or": [{"is_recurring": False}, {"materialized_through": None}]},
            ]
        }
        return await self.find_many(query, limit=limit, sort_by="start_date")

    async def delete_by_team(self, team_id: str) -> int:
        """Delete every event of a team."""
        return await self.delete_many({"team_id": team_id})

    async def delete_occurrences_from(self, template_id: str, start: datetime) -> int:
        """Delete the occurrences of a template whose slot starts at or after ``start``."""
        return await self.delete_many({"template_id": template_id, "occurrence_start": {"$gte": start}})

    async def update_occurrences_from(self, template_id: str, start: datetime, fields: Dict[str, Any]) -> int:
        """Set ``fields`` on the occurrences of a template whose slot starts at or after ``start``."""
        return await self.update_many({"template_id": template_id, "occurrence_start": {"$gte": start}}, fields)
