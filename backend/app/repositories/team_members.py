"""
Team Member Repository

Memberships live in their own collection, one document per (user, team)
pair. A unique index on (user_id, team_id) backs that invariant.
"""

from typing import List, Optional

from app.models.team import MemberStatus, TeamMember
from app.repositories.base import BaseRepository

_MAX_MEMBERS = 10_000


class TeamMemberRepository(BaseRepository[TeamMember]):
    """Repository for team membership database operations."""

    collection_name = "team_members"
    model_class = TeamMember

    async def find_membership(self, user_id: str, team_id: str) -> Optional[TeamMember]:
        """Get the membership of a user in a team, whatever its status."""
        return await self.find_one({"user_id": user_id, "team_id": team_id})

    async def list_by_team(
        self, team_id: str, status: Optional[MemberStatus] = None
    ) -> List[TeamMember]:
        """List memberships of a team, optionally filtered by status."""
        query = {"team_id": team_id}
        if status is not None:
            query["status"] = status.value
        return await self.find_many(query, limit=_MAX_MEMBERS, sort_by="joined_at")

    async def list_active(self, team_id: str) -> List[TeamMember]:
        """List ACTIVE memberships of a team."""
        return await self.list_by_team(team_id, status=MemberStatus.ACTIVE)

    async def list_active_team_ids(self, user_id: str) -> List[str]:
        """IDs of the teams where the user holds an ACTIVE membership."""
        memberships = await self.find_many(
            {"user_id": user_id, "status": MemberStatus.ACTIVE.value}, limit=_MAX_MEMBERS
        )
        return [m.team_id for m in memberships]

    async def delete_by_team(self, team_id: str) -> int:
        """Delete every membership of a team."""
        return await self.delete_many({"team_id": team_id})
