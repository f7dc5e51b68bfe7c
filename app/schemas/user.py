from typing import Optional
from pydantic import BaseModel, EmailStr, UUID4
from datetime import datetime


# Shared properties
class UserBase(BaseModel):
    email: EmailStr
    full_name: str
    phone: Optional[str] = None
    role: str


class User(UserBase):
    id: UUID4
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenPayload(BaseModel):
    sub: Optional[str] = None


class UserSummary(BaseModel):
    id: UUID4
    full_name: str
    email: str

    class Config:
        from_attributes = True
