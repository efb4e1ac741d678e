"""
Framework-free reply objects: what the engine wants shown. The bot turns
them into aiogram markup; the engine never imports aiogram.
"""
from __future__ import annotations

from dataclasses import dataclass, field

# callback_data prefixes
CB_MENU = "menu"
CB_START = "start:"          # start:{flow}
CB_CMD = "cmd:"              # cmd:list | cmd:info | cmd:backup | cmd:toggle
CB_PAGE = "page_"            # page_{flow}:{n}
CB_SELECT = "select_"        # select_{flow}:{credential}
CB_CONFIRM_DELETE = "confirm_delete:"
CB_CANCEL = "cancel"


@dataclass(frozen=True)
class Button:
    text: str
    callback_data: str = ""
    url: str = ""


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes


@dataclass
class Reply:
    text: str
    keyboard: list[list[Button]] = field(default_factory=list)
    document: Attachment | None = None
    photo_url: str | None = None


def cancel_keyboard() -> list[list[Button]]:
    return [[Button("❌ Cancel", CB_CANCEL)]]


def back_keyboard() -> list[list[Button]]:
    return [[Button("🔙 Main menu", CB_MENU)]]
