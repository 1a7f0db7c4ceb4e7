from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class UserProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)


class UserProfileRead(BaseModel):
    id: int
    user_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
