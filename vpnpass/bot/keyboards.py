"""
Reply -> aiogram markup. No decisions here.
"""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from vpnpass.conversation.replies import Reply


def build_markup(reply: Reply) -> InlineKeyboardMarkup | None:
    if not reply.keyboard:
        return None
    rows = []
    for row in reply.keyboard:
        rows.append([
            InlineKeyboardButton(text=b.text, url=b.url)
            if b.url
            else InlineKeyboardButton(text=b.text, callback_data=b.callback_data)
            for b in row
        ])
    return InlineKeyboardMarkup(inline_keyboard=rows)
