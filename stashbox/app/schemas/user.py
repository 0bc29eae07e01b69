# stashbox/app/schemas/user.py
from pydantic import BaseModel
from typing import Optional


# Claims carried by the identity provider's bearer token
class TokenPayload(BaseModel):
    sub: Optional[str] = None
