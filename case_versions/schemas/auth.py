from pydantic import BaseModel
from typing import Optional


class TokenData(BaseModel):
    author_id: str
    email: Optional[str] = None
