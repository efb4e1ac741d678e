"""
Access configuration persisted in bot-config.json.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AccessMode(str, Enum):
    PUBLIC = "public"    # any actor may self-provision
    PRIVATE = "private"  # only the administrator may operate


class AccessConfig(BaseModel):
    bot_token: str = ""
    admin_id: int = 0
    mode: AccessMode = AccessMode.PRIVATE
    domain: str = ""
    pakasir_slug: str = ""
    pakasir_api_key: str = ""
    daily_price: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True, use_enum_values=False, extra="allow")

    def is_admin(self, actor_id: int) -> bool:
        return bool(self.admin_id) and actor_id == self.admin_id

    @property
    def is_public(self) -> bool:
        return self.mode == AccessMode.PUBLIC

    @property
    def payments_enabled(self) -> bool:
        return bool(self.pakasir_slug and self.pakasir_api_key and self.daily_price > 0)

    def display_domain(self, fallback: str = "") -> str:
        return self.domain or fallback or "(Not Configured)"
