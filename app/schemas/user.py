#app\schemas\user.py
from enum import Enum
from typing import Any
from pydantic import BaseModel, EmailStr, field_validator

class UserOut(BaseModel):
    id: int
    email: EmailStr
    name: str
    is_active: bool
    role: str

    class Config:
        from_attributes = True

    @field_validator("role", mode="before")
    @classmethod
    def _enum_value(cls, v: Any):
        return v.value if isinstance(v, Enum) else v
