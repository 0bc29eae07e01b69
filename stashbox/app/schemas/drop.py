# stashbox/app/schemas/drop.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class DropTokenResponse(BaseModel):
    token: str


class DropTokenCheck(BaseModel):
    valid: bool
    reason: Optional[str] = None


class DropCreate(BaseModel):
    content: str = Field(..., min_length=1)


class DropDelivered(BaseModel):
    success: bool = True
    message: str = "Message dropped successfully"


class DropResponse(BaseModel):
    id: int
    content: str
    sender: str
    created_at: Optional[datetime] = None
