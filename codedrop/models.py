"""
Pydantic models for request/response validation.
"""
from pydantic import BaseModel
from typing import Optional


class TextDropRequest(BaseModel):
    """Request model for creating a text drop."""
    text: Optional[str] = None


class DropCreatedResponse(BaseModel):
    """Response model after creating a drop."""
    success: bool = True
    code: str
    expires_at: str


class TextDropResponse(BaseModel):
    """Response model for a retrieved text drop."""
    success: bool = True
    type: str = "text"
    content: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    attemptsRemaining: Optional[int] = None
    cooldownRemaining: Optional[int] = None
    maxAttempts: Optional[int] = None
