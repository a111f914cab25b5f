"""
Schema Exports

Input payloads accepted by the request-path services.
"""

from app.schemas.event import EventCreate, EventUpdate
from app.schemas.task import CommentCreate, TaskCreate, TaskUpdate
from app.schemas.team import TeamCreate, TeamMemberAdd, TeamMemberUpdate, TeamUpdate

__all__ = [
    "CommentCreate",
    "EventCreate",
    "EventUpdate",
    "TaskCreate",
    "TaskUpdate",
    "TeamCreate",
    "TeamMemberAdd",
    "TeamMemberUpdate",
    "TeamUpdate",
]
