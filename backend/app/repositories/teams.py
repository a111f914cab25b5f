"""
Team Repository

Centralizes all database operations for teams. Memberships live in
their own collection (see team_members.py).
"""

from typing import List

from app.models.team import Team
from app.repositories.base import BaseRepository


class TeamRepository(BaseRepository[Team]):
    """Repository for team database operations."""

    collection_name = "teams"
    model_class = Team

    async def list_by_ids(self, team_ids: List[str]) -> List[Team]:
        """Teams with the given IDs, ordered by name."""
        if not team_ids:
            return []
        return await self.find_many({"_id": {"$in": team_ids}}, limit=len(team_ids), sort_by="name")
