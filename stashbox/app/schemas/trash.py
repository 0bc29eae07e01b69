# stashbox/app/schemas/trash.py
from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Optional


class TrashEntryResponse(BaseModel):
    id: int
    original_id: str
    type: str
    content: Dict[str, Any]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
