"""
Base Repository Pattern

Provides a generic, type-safe base class for all repositories.
Reduces code duplication and ensures consistent database operations.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo import ReturnDocument

# Type variable for the model class
T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Generic base repository providing common CRUD operations.

    Type Parameters:
        T: The Pydantic model class this repository manages

    Usage:
        class TaskRepository(BaseRepository[Task]):
            collection_name = "tasks"
            model_class = Task
    """

    # Subclasses must define these
    collection_name: str
    model_class: Type[T]

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[self.collection_name]

    def _to_model(self, data: Optional[Dict[str, Any]]) -> Optional[T]:
        """Convert a raw document to a model instance."""
        if data is None:
            return None
        return self.model_class(**data)

    def _to_model_list(self, docs: List[Dict[str, Any]]) -> List[T]:
        """Convert a list of raw documents to model instances."""
        return [self.model_class(**doc) for doc in docs]

    async def get_by_id(self, id: str) -> Optional[T]:
        """Get a document by ID and return as model instance."""
        data = await self.collection.find_one({"_id": id})
        return self._to_model(data)

    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        """Find one document matching query and return as model instance."""
        data = await self.collection.find_one(query)
        return self._to_model(data)

    async def find_many(
        self,
        query: Dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort_by: Optional[str] = None,
        sort_order: int = 1,
    ) -> List[T]:
        """Find multiple documents and return as model instances."""
        cursor = self.collection.find(query)
        if sort_by:
            cursor = cursor.sort(sort_by, sort_order)
        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(limit)
        return self._to_model_list(docs)

    async def create(self, model: T) -> T:
        """Create a new document from a model instance."""
        await self.collection.insert_one(model.model_dump(by_alias=True))
        return model

    async def update(
        self,
        id: str,
        update_data: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
        push: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        """
        Update a document by ID and return the updated model.

        ``expected`` adds equality conditions to the filter so the write only
        lands if the stored document still holds those values. Returns None
        when nothing matched (missing document or failed expectation).
        """
        query: Dict[str, Any] = {"_id": id}
        if expected:
            query.update(expected)
        update_ops: Dict[str, Any] = {"$set": update_data}
        if push:
            update_ops["$push"] = push
        data = await self.collection.find_one_and_update(
            query, update_ops, return_document=ReturnDocument.AFTER
        )
        return self._to_model(data)

    async def update_many(self, query: Dict[str, Any], update_data: Dict[str, Any]) -> int:
        """Update multiple documents matching query."""
        result = await self.collection.update_many(query, {"$set": update_data})
        return result.modified_count

    async def delete(self, id: str) -> bool:
        """Delete a document by ID."""
        result = await self.collection.delete_one({"_id": id})
        return result.deleted_count > 0

    async def delete_many(self, query: Dict[str, Any]) -> int:
        """Delete multiple documents matching query."""
        result = await self.collection.delete_many(query)
        return result.deleted_count
