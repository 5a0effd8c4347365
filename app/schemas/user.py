from pydantic import BaseModel, EmailStr
from typing import Optional


class UserKeysUpdate(BaseModel):
    openai_key: Optional[str] = None
    anthropic_key: Optional[str] = None
    gemini_key: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    # Booleans only, keys never leave the server
    has_openai: bool = False
    has_anthropic: bool = False
    has_gemini: bool = False

    class Config:
        from_attributes = True
