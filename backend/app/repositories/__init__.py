"""
Repository Pattern for Database Access

Provides a clean abstraction layer over MongoDB collections. The core talks
to them through EntityStore, which adds timeouts and error translation.
"""

from app.repositories.base import BaseRepository
from app.repositories.comments import CommentRepository
from app.repositories.distributed_locks import DistributedLocksRepository
from app.repositories.events import EventRepository
from app.repositories.store import EntityStore
from app.repositories.tasks import TaskRepository
from app.repositories.team_members import TeamMemberRepository
from app.repositories.teams import TeamRepository
from app.repositories.users import UserRepository

__all__ = [
    "BaseRepository",
    "CommentRepository",
    "DistributedLocksRepository",
    "EntityStore",
    "EventRepository",
    "TaskRepository",
    "TeamMemberRepository",
    "TeamRepository",
    "UserRepository",
]
