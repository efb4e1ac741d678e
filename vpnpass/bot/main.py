"""
Telegram bot using aiogram 3.x.
Thin adapter: every update is handed to ConversationEngine and the returned
Reply is rendered. The payment poller runs as a task in the same loop.
"""
import asyncio
import io
import logging

from aiogram import Bot, Dispatcher, F, Router
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command, CommandStart
from aiogram.types import BufferedInputFile, CallbackQuery, ErrorEvent, Message

from vpnpass.bot.keyboards import build_markup
from vpnpass.conversation.engine import ConversationEngine
from vpnpass.conversation.replies import Reply
from vpnpass.conversation.sessions import SessionTable
from vpnpass.core.config import settings
from vpnpass.core.errors import AccessDenied, ExternalServiceError, VpnPassError
from vpnpass.core.logging import configure_logging
from vpnpass.services.access_config.settings_service import AccessConfigService
from vpnpass.services.backup.service import BackupRestoreManager, MAX_ENTRY_BYTES
from vpnpass.services.credentials.service import CredentialService
from vpnpass.services.payments.provider import PakasirClient
from vpnpass.services.payments.service import PaymentCoordinator
from vpnpass.services.sysinfo.service import SystemInfoService
from vpnpass.storage.lock import StoreLock

logger = logging.getLogger("bot")

router = Router()


async def send_reply(bot: Bot, engine: ConversationEngine, chat_id: int, reply: Reply) -> None:
    markup = build_markup(reply)
    if reply.document is not None:
        # файл бэкапа не трогаем: следующее меню его не удаляет
        await bot.send_document(
            chat_id,
            BufferedInputFile(reply.document.content, filename=reply.document.filename),
            caption=reply.text,
            reply_markup=markup,
        )
        return
    if reply.photo_url:
        sent = await bot.send_photo(chat_id, photo=reply.photo_url, caption=reply.text, reply_markup=markup)
    else:
        sent = await bot.send_message(chat_id, reply.text, reply_markup=markup)

    previous = engine.sessions.remember_message(chat_id, sent.message_id)
    if previous is not None:
        try:
            await bot.delete_message(chat_id, previous)
        except TelegramBadRequest:
            pass  # already deleted or too old


async def _answer_error(bot: Bot, engine: ConversationEngine, chat_id: int, error: VpnPassError) -> None:
    if isinstance(error, AccessDenied):
        text = error.message
    else:
        logger.warning("handler_error", extra={"chat_id": chat_id, "error": error.message})
        text = f"❌ {error.message}"
    await send_reply(bot, engine, chat_id, Reply(text))


@router.message(CommandStart())
@router.message(Command("menu"))
async def cmd_start(message: Message, bot: Bot, engine: ConversationEngine):
    await send_reply(bot, engine, message.chat.id, await engine.menu(message.from_user.id, message.chat.id))


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, bot: Bot, engine: ConversationEngine):
    await send_reply(bot, engine, message.chat.id, await engine.cancel(message.from_user.id, message.chat.id))


@router.callback_query(F.data)
async def on_callback(callback: CallbackQuery, bot: Bot, engine: ConversationEngine):
    await callback.answer()
    if callback.message is None:
        return
    chat_id = callback.message.chat.id
    try:
        reply = await engine.handle_callback(callback.from_user.id, chat_id, callback.data)
    except VpnPassError as e:
        await _answer_error(bot, engine, chat_id, e)
        return
    if reply is None:
        # устаревшая кнопка: показываем меню заново
        reply = await engine.menu(callback.from_user.id, chat_id)
    await send_reply(bot, engine, chat_id, reply)


@router.message(F.document)
async def on_document(message: Message, bot: Bot, engine: ConversationEngine):
    doc = message.document

    async def fetch() -> bytes:
        if doc.file_size and doc.file_size > MAX_ENTRY_BYTES * 4:
            raise ExternalServiceError("File is too large")
        buf = io.BytesIO()
        try:
            await bot.download(doc, destination=buf)
        except TelegramAPIError as e:
            raise ExternalServiceError("Failed to download the file") from e
        return buf.getvalue()

    try:
        reply = await engine.handle_document(message.from_user.id, message.chat.id, fetch)
    except VpnPassError as e:
        await _answer_error(bot, engine, message.chat.id, e)
        return
    if reply is not None:
        await send_reply(bot, engine, message.chat.id, reply)


@router.message(F.text)
async def on_text(message: Message, bot: Bot, engine: ConversationEngine):
    try:
        reply = await engine.handle_text(message.from_user.id, message.chat.id, message.text)
    except VpnPassError as e:
        await _answer_error(bot, engine, message.chat.id, e)
        return
    if reply is None:
        reply = await engine.menu(message.from_user.id, message.chat.id)
    await send_reply(bot, engine, message.chat.id, reply)


async def on_error(event: ErrorEvent, *args, **kwargs):
    """Global error handler."""
    logger.exception(
        "Error in handler",
        extra={"error": str(event.exception)},
    )


def build_engine(
    access_config: AccessConfigService,
    bot: Bot | None = None,
    lock: StoreLock | None = None,
) -> ConversationEngine:
    lock = lock or access_config.mutex
    credentials = CredentialService.from_paths(lock=lock)
    sessions = SessionTable()
    engine = ConversationEngine(
        credentials=credentials,
        access_config=access_config,
        sessions=sessions,
        backups=BackupRestoreManager(lock=lock, credentials=credentials),
        sysinfo=SystemInfoService(),
    )
    config = access_config.current
    if config.payments_enabled:
        async def notify(chat_id: int, reply: Reply) -> None:
            await send_reply(bot, engine, chat_id, reply)

        engine.payments = PaymentCoordinator(
            credentials=credentials,
            provider=PakasirClient(config.pakasir_slug, config.pakasir_api_key),
            sessions=sessions,
            notifier=notify if bot is not None else None,
            access_config=access_config,
        )
    return engine


async def main():
    """Start the bot."""
    configure_logging()
    logger.info("Starting bot...")

    lock = StoreLock()
    access_config = AccessConfigService(lock=lock)
    config = access_config.load()
    if not config.bot_token:
        raise SystemExit(f"bot_token is not set in {settings.bot_config_path}")

    bot = Bot(token=config.bot_token)
    engine = build_engine(access_config, bot, lock)

    dp = Dispatcher()
    dp["engine"] = engine
    dp.errors.register(on_error)
    dp.include_router(router)

    await bot.delete_webhook(drop_pending_updates=True)

    poller: asyncio.Task | None = None
    if engine.payments is not None:
        poller = asyncio.create_task(engine.payments.run())
    logger.info("Bot started successfully!")

    try:
        await dp.start_polling(bot, allowed_updates=["message", "callback_query"])
    finally:
        if poller is not None:
            engine.payments.stop()
            await poller
            engine.payments.provider.close()
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
