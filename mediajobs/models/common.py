"""
Common response models.

Error schema shared by the HTTP surface.

Dependencies: pydantic
System role: Common API response structures
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response schema (FastAPI HTTPException shape)."""

    detail: str = Field(description="Error message")

