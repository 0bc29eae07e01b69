# stashbox/app/schemas/collection.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class SubItemIn(BaseModel):
    """
    A sub-item as the frontend submits it.

    ``owner_id``/``is_owner`` are echoed back from listings; a bulk save
    ignores items that belong to somebody else.
    """
    id: Optional[str] = Field(default=None, max_length=64)
    owner_id: Optional[int] = None
    is_owner: Optional[bool] = None

    name: Optional[str] = None
    content: Optional[str] = None
    # Nested entries: todo items, links, command steps
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    is_hidden: bool = False
    parent_id: Optional[str] = Field(default=None, max_length=64)


class CollectionSaveRequest(BaseModel):
    items: List[SubItemIn]
    # Version from the last listing; omit to overwrite whatever is current
    version: Optional[int] = None


class GranteeResponse(BaseModel):
    user_id: int
    username: str


class SubItemResponse(BaseModel):
    id: str
    kind: str
    name: str
    content: Optional[str] = None
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    is_hidden: bool = False
    parent_id: Optional[str] = None

    is_owner: bool
    owner_id: int
    owner_username: Optional[str] = None
    shared_with: List[GranteeResponse] = Field(default_factory=list)

    # Only filled in for the owner
    is_public: bool = False
    public_token: Optional[str] = None

    updated_at: Optional[datetime] = None


class CollectionResponse(BaseModel):
    kind: str
    version: int
    items: List[SubItemResponse]


class ShareRequest(BaseModel):
    action: Literal["add", "remove", "leave", "public_toggle"]
    username: Optional[str] = Field(default=None, max_length=50)
    # Owner of the item; defaults to the caller
    owner_id: Optional[int] = None


class ShareResponse(BaseModel):
    success: bool = True
    message: str
    is_public: Optional[bool] = None
    public_token: Optional[str] = None


class PublicItemResponse(BaseModel):
    id: str
    kind: str
    name: str
    content: Optional[str] = None
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    author: Optional[str] = None
    # Commands of a public command category
    children: List["PublicItemResponse"] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
