"""
Shared Pydantic types for MongoDB integration.
"""

from typing import Annotated, Any

from bson import ObjectId
from pydantic import BeforeValidator


def convert_objectid_to_str(v: Any) -> str:
    """Convert MongoDB ObjectId to string before Pydantic validation."""
    if isinstance(v, ObjectId):
        return str(v)
    return v


# Entity ids are uuid4 strings; rows imported with native ObjectIds still validate.
PyObjectId = Annotated[str, BeforeValidator(convert_objectid_to_str)]
