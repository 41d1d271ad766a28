"""Telegram binding of the transport interface, using python-telegram-bot."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine

from telegram import BotCommand, Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters
from telegram.request import HTTPXRequest

from ratebot.errors import TransportError
from ratebot.transport.base import (
    CHAT,
    FaultHandler,
    InboundMessage,
    MessageHandler as InboundHandler,
    SubscriptionHandler,
    SubscriptionRequest,
    Transport,
)
from ratebot.transport.roster import ContactRoster

logger = logging.getLogger(__name__)

MAX_TELEGRAM_MESSAGE_LEN = 3900
DEFAULT_CALL_TIMEOUT_SECONDS = 30
BOT_COMMANDS = [
    BotCommand("help", "how to ask for a conversion"),
    BotCommand("list", "supported currency codes"),
    BotCommand("who", "about this bot"),
]


def _truncate(text: str) -> str:
    if len(text) <= MAX_TELEGRAM_MESSAGE_LEN:
        return text
    return text[: MAX_TELEGRAM_MESSAGE_LEN - 3] + "..."


def _requester_of(update: Update) -> str | None:
    message = update.effective_message
    origin = getattr(message, "forward_origin", None) if message else None
    if origin is None:
        return None
    user = getattr(origin, "sender_user", None)
    if user is not None:
        return user.username or str(user.id)
    return getattr(origin, "sender_user_name", None)


def inbound_from_update(update: Update) -> InboundMessage | None:
    chat = update.effective_chat
    message = update.effective_message
    if chat is None or message is None:
        return None
    if message.text is None:
        kind = "other"
    elif chat.type == ChatType.PRIVATE:
        kind = CHAT
    else:
        kind = str(chat.type)
    return InboundMessage(
        origin=str(chat.id),
        body=(message.text or "").strip(),
        kind=kind,
        requester=_requester_of(update),
    )


class TelegramTransport(Transport):
    """Run python-telegram-bot on a private event loop thread.

    Calls from other threads block until the loop has run them; calls made
    from the loop thread itself (handlers replying synchronously) are
    scheduled without waiting.
    """

    def __init__(self, roster: ContactRoster, *, call_timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS) -> None:
        self._roster = roster
        self._call_timeout = call_timeout
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._request: HTTPXRequest | None = None
        self._app: Application | None = None
        self._on_message: InboundHandler | None = None
        self._on_subscription: SubscriptionHandler | None = None
        self._on_fault: FaultHandler | None = None

    def _start_loop(self) -> None:
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def run() -> None:
            asyncio.set_event_loop(loop)
            ready.set()
            loop.run_forever()
            loop.close()

        self._loop = loop
        self._loop_thread = threading.Thread(target=run, name="telegram-loop", daemon=True)
        self._loop_thread.start()
        ready.wait()

    def _stop_loop(self) -> None:
        loop, thread = self._loop, self._loop_thread
        self._loop = None
        self._loop_thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join(timeout=5)

    def _call(self, coro: Coroutine[Any, Any, Any]) -> Any:
        loop = self._loop
        if loop is None:
            coro.close()
            raise TransportError("transport is not connected")
        if threading.current_thread() is self._loop_thread:
            task = loop.create_task(coro)
            task.add_done_callback(self._report_background_failure)
            return None
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(self._call_timeout)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise TransportError(f"telegram call timed out after {self._call_timeout}s") from exc
        except TelegramError as exc:
            raise TransportError(str(exc)) from exc

    def _report_background_failure(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("telegram call failed: %s", exc)

    def connect(self) -> None:
        if self._loop is None:
            self._start_loop()
        self._request = HTTPXRequest(connection_pool_size=8)
        self._call(self._request.initialize())

    def authenticate(self, credentials: str) -> None:
        if not credentials:
            raise TransportError("bot token is empty")
        self._app = (
            Application.builder()
            .token(credentials)
            .request(self._request)
            .build()
        )
        # initialize() calls getMe, which rejects a bad token.
        self._call(self._app.initialize())
        logger.info("authenticated as @%s", self._app.bot.username)

    def register_message_handler(self, handler: InboundHandler) -> None:
        self._on_message = handler

    def register_subscription_handler(self, handler: SubscriptionHandler) -> None:
        self._on_subscription = handler

    def register_fault_handler(self, handler: FaultHandler) -> None:
        self._on_fault = handler

    def listen(self) -> None:
        app = self._require_app()
        app.add_handler(CommandHandler("start", self._cmd_start))
        app.add_handler(CommandHandler("stop", self._cmd_stop))
        app.add_handler(MessageHandler(filters.ALL, self._handle_update))
        app.add_error_handler(self._handle_error)
        self._call(app.start())
        self._call(
            app.updater.start_polling(
                allowed_updates=Update.ALL_TYPES,
                error_callback=self._polling_error,
            )
        )

    def send_presence(self, available: bool) -> None:
        bot = self._require_app().bot
        if available:
            self._call(bot.set_my_commands(BOT_COMMANDS))
        else:
            self._call(bot.delete_my_commands())

    def send_message(self, destination: str, text: str) -> None:
        bot = self._require_app().bot
        self._call(bot.send_message(chat_id=int(destination), text=_truncate(text)))

    def accept_subscription(self, origin: str) -> None:
        self._roster.add(origin)

    def drop_subscription(self, origin: str) -> None:
        self._roster.remove(origin)

    def is_connected(self) -> bool:
        app = self._app
        if app is None or self._loop is None:
            return False
        return bool(app.running and app.updater is not None and app.updater.running)

    def disconnect(self) -> None:
        app, self._app = self._app, None
        try:
            if app is not None and self._loop is not None:
                self._call(self._shutdown_app(app))
            elif self._request is not None and self._loop is not None:
                self._call(self._request.shutdown())
        finally:
            self._request = None
            self._stop_loop()

    async def _shutdown_app(self, app: Application) -> None:
        if app.updater is not None and app.updater.running:
            await app.updater.stop()
        if app.running:
            await app.stop()
        await app.shutdown()

    def _require_app(self) -> Application:
        if self._app is None:
            raise TransportError("transport is not authenticated")
        return self._app

    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.effective_chat is not None and self._on_subscription is not None:
            self._on_subscription(SubscriptionRequest(origin=str(update.effective_chat.id), subscribe=True))

    async def _cmd_stop(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.effective_chat is not None and self._on_subscription is not None:
            self._on_subscription(SubscriptionRequest(origin=str(update.effective_chat.id), subscribe=False))

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = inbound_from_update(update)
        if message is not None and self._on_message is not None:
            self._on_message(message)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        if self._on_fault is not None and context.error is not None:
            self._on_fault(context.error, "dispatch")

    def _polling_error(self, exc: TelegramError) -> None:
        if self._on_fault is not None:
            self._on_fault(exc, "polling")
