"""
ConversationEngine — per-actor state machine behind the Telegram bot.

Framework-free: every entry point takes plain ids/strings and returns a Reply
(or None when the update is ignored). Blocking store work runs through
asyncio.to_thread so one actor waiting on the store lock never stalls the
event loop for the others.

Error policy:
- AccessDenied on flow start / admin command is raised; the session is reset.
- ValidationError re-prompts the same step, collected fields are kept.
- Store errors at a terminal step end the flow with the error message.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from vpnpass.conversation import messages
from vpnpass.conversation.pagination import paginate
from vpnpass.conversation.policy import Capabilities, decide_capabilities
from vpnpass.conversation.replies import (
    CB_CANCEL,
    CB_CMD,
    CB_CONFIRM_DELETE,
    CB_MENU,
    CB_PAGE,
    CB_SELECT,
    CB_START,
    Attachment,
    Button,
    Reply,
    back_keyboard,
    cancel_keyboard,
)
from vpnpass.conversation.sessions import SessionTable
from vpnpass.conversation.steps import FIRST_STEP, SELECTION_STEPS, Flow, Step
from vpnpass.conversation.validators import validate_credential, validate_duration
from vpnpass.core.config import settings
from vpnpass.core.errors import (
    AccessDenied,
    BelowMinimum,
    ExternalServiceError,
    ValidationError,
    VpnPassError,
)
from vpnpass.services.access_config.settings_service import AccessConfigService
from vpnpass.services.backup.service import BackupRestoreManager
from vpnpass.services.credentials.service import CredentialResult, CredentialService
from vpnpass.services.payments.service import PaymentCoordinator
from vpnpass.services.sysinfo.service import SystemInfoService

logger = logging.getLogger(__name__)

LIST_PAGE = "list"


class ConversationEngine:
    def __init__(
        self,
        credentials: CredentialService,
        access_config: AccessConfigService,
        sessions: SessionTable | None = None,
        payments: PaymentCoordinator | None = None,
        backups: BackupRestoreManager | None = None,
        sysinfo: SystemInfoService | None = None,
        page_size: int | None = None,
    ) -> None:
        self.credentials = credentials
        self.access_config = access_config
        self.sessions = sessions if sessions is not None else SessionTable()
        self.payments = payments
        self.backups = backups
        self.sysinfo = sysinfo
        self.page_size = page_size or settings.page_size

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def capabilities(self, actor_id: int) -> Capabilities:
        return decide_capabilities(self.access_config.current, actor_id)

    def _require_admin(self, actor_id: int) -> Capabilities:
        caps = self.capabilities(actor_id)
        if not caps.can_manage:
            raise AccessDenied("⛔ Access denied")
        return caps

    def _domain(self) -> str:
        return self.access_config.display_domain()

    def _result_reply(self, title: str, result: CredentialResult) -> Reply:
        text = messages.account_details(title, result.subscription, self._domain())
        if result.reload_error:
            text += f"\n\n⚠️ Service reload failed: {result.reload_error}"
        return Reply(text, keyboard=back_keyboard())

    def _fail(self, actor_id: int, error: VpnPassError, flow: Flow | None) -> Reply:
        self.sessions.reset(actor_id)
        logger.warning(
            "flow_failed",
            extra={"actor_id": actor_id, "flow": flow.value if flow else None, "error": error.message},
        )
        return Reply(f"❌ {error.message}", keyboard=back_keyboard())

    def _reprompt(self, error: ValidationError, prompt: str) -> Reply:
        return Reply(f"⚠️ {error.message}\n\n{prompt}", keyboard=cancel_keyboard())

    def _duration_prompt(self, caps: Capabilities) -> str:
        text = f"Enter the duration in days ({caps.min_days}-{caps.max_days}):"
        if caps.create_requires_payment:
            text += f"\nPrice: {messages.format_price(caps.daily_price)} per day"
        return text

    def _selection_reply(self, flow: Flow, page_number: int, views) -> Reply:
        page = paginate(views, page_number, self.page_size)
        title = "Select a password to renew" if flow == Flow.RENEW else "Select a password to delete"
        keyboard = [
            [Button(messages.listing_line(v), f"{CB_SELECT}{flow.value}:{v.credential}")]
            for v in page.items
        ]
        nav = []
        if page.has_prev:
            nav.append(Button("⬅️ Prev", f"{CB_PAGE}{flow.value}:{page.number - 1}"))
        if page.has_next:
            nav.append(Button("Next ➡️", f"{CB_PAGE}{flow.value}:{page.number + 1}"))
        if nav:
            keyboard.append(nav)
        keyboard.extend(cancel_keyboard())
        return Reply(f"{title} (page {page.number}/{page.total_pages})", keyboard=keyboard)

    # ------------------------------------------------------------------
    # Menu
    # ------------------------------------------------------------------

    def main_menu(self, actor_id: int) -> Reply:
        caps = self.capabilities(actor_id)
        config = self.access_config.current
        header = f"MENU {settings.service_name.upper()} UDP\n• Domain: {self.access_config.display_domain()}"
        if not caps.flows:
            return Reply(f"{header}\n\n⛔ This bot is private.")

        rows: list[list[Button]] = [[Button("👤 Create Password", f"{CB_START}{Flow.CREATE.value}")]]
        if caps.is_admin:
            rows[0].append(Button("🗑️ Delete Password", f"{CB_START}{Flow.DELETE.value}"))
            rows.append([
                Button("🔄 Renew Password", f"{CB_START}{Flow.RENEW.value}"),
                Button("📋 List Passwords", f"{CB_CMD}list"),
            ])
            rows.append([
                Button("📊 System Info", f"{CB_CMD}info"),
                Button("💾 Backup", f"{CB_CMD}backup"),
                Button("♻️ Restore", f"{CB_START}{Flow.RESTORE.value}"),
            ])
            mode_label = "🌍 Mode: Public" if config.is_public else "🔐 Mode: Private"
            rows.append([Button(mode_label, f"{CB_CMD}toggle")])
        elif caps.create_requires_payment:
            header += f"\n• Price: {messages.format_price(caps.daily_price)} / day"
        return Reply(f"{header}\n\n👇 Choose a menu below:", keyboard=rows)

    async def menu(self, actor_id: int, chat_id: int) -> Reply:
        return self.main_menu(actor_id)

    # ------------------------------------------------------------------
    # Flow start
    # ------------------------------------------------------------------

    async def start(self, actor_id: int, chat_id: int, flow: Flow) -> Reply:
        async with self.sessions.locked(actor_id):
            await self._abandon_pending(actor_id)
            caps = self.capabilities(actor_id)
            if not caps.can_start(flow):
                self.sessions.reset(actor_id)
                logger.info("flow_denied", extra={"actor_id": actor_id, "flow": flow.value})
                raise AccessDenied("⛔ Access denied")

            if flow in SELECTION_STEPS:
                views = await asyncio.to_thread(self.credentials.list)
                if not views:
                    self.sessions.reset(actor_id)
                    return Reply("No passwords yet.", keyboard=back_keyboard())
                self.sessions.begin(actor_id, chat_id, SELECTION_STEPS[flow], page=1)
                return self._selection_reply(flow, 1, views)

            self.sessions.begin(actor_id, chat_id, FIRST_STEP[flow])
            logger.info("flow_started", extra={"actor_id": actor_id, "flow": flow.value})
            if flow == Flow.RESTORE:
                return Reply("📤 Send the backup .zip file to restore.", keyboard=cancel_keyboard())
            return Reply("Enter a password (3-20 characters: letters, digits, _ or -):", keyboard=cancel_keyboard())

    # ------------------------------------------------------------------
    # Text input
    # ------------------------------------------------------------------

    async def handle_text(self, actor_id: int, chat_id: int, text: str) -> Reply | None:
        async with self.sessions.locked(actor_id):
            session = self.sessions.get(actor_id)
            if session is None:
                return None
            step = session.step
            caps = self.capabilities(actor_id)
            if not caps.can_start(step.flow):
                # mode switched to private mid-flow
                await self._abandon_pending(actor_id)
                self.sessions.reset(actor_id)
                raise AccessDenied("⛔ Access denied")

            if step == Step.CREATE_CREDENTIAL:
                return await self._on_credential(actor_id, caps, text)
            if step == Step.CREATE_DURATION:
                return await self._on_create_duration(actor_id, caps, text)
            if step == Step.RENEW_DURATION:
                return await self._on_renew_duration(actor_id, caps, text)
            if step == Step.CREATE_PAYMENT:
                return Reply("⏳ Waiting for your payment. Press Cancel to abort.", keyboard=cancel_keyboard())
            if step in (Step.RENEW_SELECTION, Step.DELETE_SELECTION):
                return Reply("Please choose a password from the list above.", keyboard=cancel_keyboard())
            if step == Step.DELETE_CONFIRMATION:
                return Reply("Please confirm or cancel the deletion.", keyboard=cancel_keyboard())
            if step == Step.RESTORE_ARCHIVE:
                return Reply("📤 Send the backup .zip file, or press Cancel.", keyboard=cancel_keyboard())
            return None

    async def _on_credential(self, actor_id: int, caps: Capabilities, text: str) -> Reply:
        prompt = "Enter a password (3-20 characters: letters, digits, _ or -):"
        try:
            credential = validate_credential(text)
            if caps.create_requires_payment and await asyncio.to_thread(self.credentials.exists, credential):
                raise ValidationError(f"Password {credential} is already taken")
        except ValidationError as e:
            return self._reprompt(e, prompt)
        self.sessions.advance(actor_id, Step.CREATE_DURATION, credential=credential)
        return Reply(self._duration_prompt(caps), keyboard=cancel_keyboard())

    async def _on_create_duration(self, actor_id: int, caps: Capabilities, text: str) -> Reply:
        session = self.sessions.get(actor_id)
        try:
            days = validate_duration(text, caps.min_days, caps.max_days)
        except ValidationError as e:
            return self._reprompt(e, self._duration_prompt(caps))
        credential = session.data["credential"]

        if caps.create_requires_payment:
            return await self._request_payment(actor_id, caps, days)

        try:
            result = await asyncio.to_thread(self.credentials.create, credential, days)
        except VpnPassError as e:
            return self._fail(actor_id, e, Flow.CREATE)
        self.sessions.reset(actor_id)
        return self._result_reply("✅ Account created", result)

    async def _request_payment(self, actor_id: int, caps: Capabilities, days: int) -> Reply:
        session = self.sessions.get(actor_id)
        if self.payments is None:
            return self._fail(actor_id, ExternalServiceError("Payments are not available"), Flow.CREATE)
        try:
            intent, invoice = await self.payments.create_intent(session, days, caps.daily_price)
        except BelowMinimum as e:
            return self._reprompt(
                ValidationError(f"Minimum payment is {messages.format_price(e.minimum)}; choose more days"),
                self._duration_prompt(caps),
            )
        except ExternalServiceError as e:
            return self._fail(actor_id, e, Flow.CREATE)
        text = messages.payment_request(intent.credential, intent.days, intent.price, intent.expired_at)
        return Reply(text, keyboard=cancel_keyboard(), photo_url=invoice.qr_url)

    async def _on_renew_duration(self, actor_id: int, caps: Capabilities, text: str) -> Reply:
        session = self.sessions.get(actor_id)
        try:
            days = validate_duration(text, caps.min_days, caps.max_days)
        except ValidationError as e:
            return self._reprompt(e, self._duration_prompt(caps))
        try:
            result = await asyncio.to_thread(self.credentials.renew, session.data["credential"], days)
        except VpnPassError as e:
            return self._fail(actor_id, e, Flow.RENEW)
        self.sessions.reset(actor_id)
        return self._result_reply("✅ Account renewed", result)

    # ------------------------------------------------------------------
    # Buttons
    # ------------------------------------------------------------------

    async def page(self, actor_id: int, chat_id: int, flow: Flow, number: int) -> Reply | None:
        """Re-render a selection step at another page; the step is not consumed."""
        async with self.sessions.locked(actor_id):
            session = self.sessions.get(actor_id)
            if session is None or session.step != SELECTION_STEPS.get(flow):
                return None
            views = await asyncio.to_thread(self.credentials.list)
            reply = self._selection_reply(flow, number, views)
            session.data["page"] = paginate(views, number, self.page_size).number
            return reply

    async def select(self, actor_id: int, chat_id: int, flow: Flow, credential: str) -> Reply | None:
        async with self.sessions.locked(actor_id):
            session = self.sessions.get(actor_id)
            if session is None or session.step != SELECTION_STEPS.get(flow):
                return None
            if flow == Flow.RENEW:
                self.sessions.advance(actor_id, Step.RENEW_DURATION, credential=credential)
                caps = self.capabilities(actor_id)
                return Reply(f"Renew {credential}\n\n{self._duration_prompt(caps)}", keyboard=cancel_keyboard())
            self.sessions.advance(actor_id, Step.DELETE_CONFIRMATION, credential=credential)
            keyboard = [[
                Button("✅ Yes, delete", f"{CB_CONFIRM_DELETE}{credential}"),
                Button("❌ Cancel", CB_CANCEL),
            ]]
            return Reply(f"Delete password {credential}?", keyboard=keyboard)

    async def confirm_delete(self, actor_id: int, chat_id: int, credential: str) -> Reply | None:
        async with self.sessions.locked(actor_id):
            session = self.sessions.get(actor_id)
            if (
                session is None
                or session.step != Step.DELETE_CONFIRMATION
                or session.data.get("credential") != credential
            ):
                return None
            if not self.capabilities(actor_id).can_start(Flow.DELETE):
                self.sessions.reset(actor_id)
                raise AccessDenied("⛔ Access denied")
            try:
                result = await asyncio.to_thread(self.credentials.delete, credential)
            except VpnPassError as e:
                return self._fail(actor_id, e, Flow.DELETE)
            self.sessions.reset(actor_id)
            text = f"🗑️ Password {credential} deleted."
            if result.reload_error:
                text += f"\n\n⚠️ Service reload failed: {result.reload_error}"
            return Reply(text, keyboard=back_keyboard())

    async def _abandon_pending(self, actor_id: int) -> bool:
        """Drop the actor's unpaid intent, if any. Caller holds the actor lock."""
        session = self.sessions.get(actor_id)
        if session is None or session.step != Step.CREATE_PAYMENT or self.payments is None:
            return False
        return self.payments.abandon(session.data.get("order_id", ""))

    async def cancel(self, actor_id: int, chat_id: int) -> Reply:
        """Back to idle with no store side effect."""
        async with self.sessions.locked(actor_id):
            session = self.sessions.get(actor_id)
            if session is not None:
                await self._abandon_pending(actor_id)
                self.sessions.reset(actor_id)
                logger.info("flow_cancelled", extra={"actor_id": actor_id, "step": session.step.value})
        menu = self.main_menu(actor_id)
        return Reply(f"Cancelled.\n\n{menu.text}", keyboard=menu.keyboard)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def handle_document(
        self,
        actor_id: int,
        chat_id: int,
        fetch: Callable[[], Awaitable[bytes]],
    ) -> Reply | None:
        """Accepted only at the restore step and only from the administrator."""
        async with self.sessions.locked(actor_id):
            if self.sessions.step_of(actor_id) != Step.RESTORE_ARCHIVE:
                return None
            if not self.capabilities(actor_id).is_admin or self.backups is None:
                return None
            try:
                archive = await fetch()
            except ExternalServiceError as e:
                return self._fail(actor_id, e, Flow.RESTORE)
            try:
                result = await asyncio.to_thread(self.backups.restore, archive)
            except ValidationError as e:
                return self._reprompt(e, "📤 Send the backup .zip file to restore.")
            except VpnPassError as e:
                return self._fail(actor_id, e, Flow.RESTORE)
            self.sessions.reset(actor_id)

        lines = [f"✅ Restore complete: {', '.join(result.restored) or 'nothing restored'}"]
        if result.ignored:
            lines.append(f"Ignored: {', '.join(result.ignored)}")
        if result.roster_error:
            lines.append(f"⚠️ Roster not resynced: {result.roster_error}")
        if result.reload_error:
            lines.append(f"⚠️ Service reload failed: {result.reload_error}")
        if result.restart_scheduled:
            lines.append("The bot restarts in a moment.")
        # bot-config.json may have changed
        try:
            await asyncio.to_thread(self.access_config.load)
        except VpnPassError as e:
            logger.warning("access_config_reload_failed", extra={"error": e.message})
            lines.append(f"⚠️ {e.message}")
        return Reply("\n".join(lines), keyboard=back_keyboard())

    # ------------------------------------------------------------------
    # One-shot admin commands
    # ------------------------------------------------------------------

    async def list_credentials(self, actor_id: int, chat_id: int, number: int = 1) -> Reply:
        self._require_admin(actor_id)
        views = await asyncio.to_thread(self.credentials.list)
        if not views:
            return Reply("No passwords yet.", keyboard=back_keyboard())
        page = paginate(views, number, self.page_size)
        keyboard: list[list[Button]] = []
        nav = []
        if page.has_prev:
            nav.append(Button("⬅️ Prev", f"{CB_PAGE}{LIST_PAGE}:{page.number - 1}"))
        if page.has_next:
            nav.append(Button("Next ➡️", f"{CB_PAGE}{LIST_PAGE}:{page.number + 1}"))
        if nav:
            keyboard.append(nav)
        keyboard.extend(back_keyboard())
        return Reply(messages.listing("📋 Passwords", page), keyboard=keyboard)

    async def system_info(self, actor_id: int, chat_id: int) -> Reply:
        self._require_admin(actor_id)
        sysinfo = self.sysinfo or SystemInfoService()
        info = await asyncio.to_thread(sysinfo.collect)
        text = (
            f"INFO {info['service'].upper()} UDP\n"
            f"Domain    : {self._domain()}\n"
            f"IP Public : {info['public_ip']}\n"
            f"IP Private: {info['private_ip']}\n"
            f"Port      : {info['port']}\n"
            f"Service   : {info['service']}\n"
            f"City      : {info['city']}\n"
            f"ISP       : {info['isp']}"
        )
        return Reply(text, keyboard=back_keyboard())

    async def backup(self, actor_id: int, chat_id: int) -> Reply:
        self._require_admin(actor_id)
        if self.backups is None:
            raise ExternalServiceError("Backup is not available")
        archive = await asyncio.to_thread(self.backups.backup)
        logger.info("backup_sent", extra={"actor_id": actor_id})
        return Reply(
            "💾 Backup of the current configuration.",
            keyboard=back_keyboard(),
            document=Attachment(self.backups.backup_filename(), archive),
        )

    async def toggle_mode(self, actor_id: int, chat_id: int) -> Reply:
        self._require_admin(actor_id)
        config = await asyncio.to_thread(self.access_config.toggle_mode, actor_id)
        menu = self.main_menu(actor_id)
        return Reply(f"Mode switched to {config.mode.value}.\n\n{menu.text}", keyboard=menu.keyboard)

    # ------------------------------------------------------------------
    # Callback routing
    # ------------------------------------------------------------------

    async def handle_callback(self, actor_id: int, chat_id: int, data: str) -> Reply | None:
        """Route inline-button callback_data to the operation it names."""
        if data == CB_MENU:
            return await self.menu(actor_id, chat_id)
        if data == CB_CANCEL:
            return await self.cancel(actor_id, chat_id)
        if data.startswith(CB_START):
            try:
                flow = Flow(data[len(CB_START):])
            except ValueError:
                return None
            return await self.start(actor_id, chat_id, flow)
        if data.startswith(CB_CMD):
            command = data[len(CB_CMD):]
            handler = {
                "list": self.list_credentials,
                "info": self.system_info,
                "backup": self.backup,
                "toggle": self.toggle_mode,
            }.get(command)
            return await handler(actor_id, chat_id) if handler else None
        if data.startswith(CB_CONFIRM_DELETE):
            return await self.confirm_delete(actor_id, chat_id, data[len(CB_CONFIRM_DELETE):])
        if data.startswith(CB_PAGE):
            target, _, raw = data[len(CB_PAGE):].partition(":")
            if not raw.isdigit():
                return None
            if target == LIST_PAGE:
                return await self.list_credentials(actor_id, chat_id, int(raw))
            try:
                flow = Flow(target)
            except ValueError:
                return None
            return await self.page(actor_id, chat_id, flow, int(raw))
        if data.startswith(CB_SELECT):
            target, _, credential = data[len(CB_SELECT):].partition(":")
            try:
                flow = Flow(target)
            except ValueError:
                return None
            return await self.select(actor_id, chat_id, flow, credential)
        return None
