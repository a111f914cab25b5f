"""
User Repository

Centralizes all database operations for users.
"""

from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for user database operations."""

    collection_name = "users"
    model_class = User
