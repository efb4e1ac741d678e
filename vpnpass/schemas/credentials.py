from typing import Any

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    success: bool
    message: str
    data: Any = None


class CredentialRef(BaseModel):
    password: str = Field(..., min_length=1)


class CredentialDays(CredentialRef):
    days: int
