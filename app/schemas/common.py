"""
Common Pydantic schemas
"""

from typing import Any, ClassVar, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class StandardResponse(BaseModel):
    """Standard API response"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Error response schema"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None

class DocumentModel(BaseModel):
    """Base for stored documents: camelCase on the wire and in the store"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Attributes derived from the document path rather than stored in it
    path_fields: ClassVar[set[str]] = set()

    def to_document(self) -> dict[str, Any]:
        """Field mapping as written to the document store"""
        return self.model_dump(by_alias=True, exclude=self.path_fields, exclude_none=True)
