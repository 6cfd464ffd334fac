# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and serialization helpers.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class BaseEntity(BaseModel):
    """Base entity with common fields for all stored records."""
    
    model_config = ConfigDict(
        # Documents are stored with camelCase keys
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True
    )
    
    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")
    
    def to_document(self) -> Dict[str, Any]:
        """Serialize to a MongoDB document keyed by camelCase aliases."""
        document = self.model_dump(by_alias=True, exclude={"id"})
        if ObjectId.is_valid(self.id):
            document["_id"] = ObjectId(self.id)
        else:
            document["_id"] = self.id
        return document
    
    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]):
        """Build an entity from a stored document, or None when absent."""
        if document is None:
            return None
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)
