# stashbox/app/schemas/secret.py
from pydantic import BaseModel, Field
from typing import Optional


class SecretCreate(BaseModel):
    content: str = Field(..., min_length=1)
    max_views: int = Field(default=1, ge=1)
    # Omit for a secret that only burns on reading
    expires_in_minutes: Optional[int] = Field(default=None, ge=1)


class SecretCreated(BaseModel):
    id: str


class SecretReveal(BaseModel):
    content: str
    burned: bool
    views_left: int = 0
