"""
Guaranteed-response dispatch of webhook updates.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Union

from shared.logging import get_logger, set_update_context, clear_update_context
from shared.metrics import MetricsCollector
from ..adapters.telegram_client import TelegramClient
from ..monitoring.health import HealthMonitor
from ..ratelimit.throttle import ChatThrottle
from ..stats.usage import UsageAggregator
from . import replies
from .updates import Update, UpdateKind, recover_chat_id


ChatId = Union[int, str]

OUTCOME_HANDLED = "handled"
OUTCOME_UNHANDLED = "unhandled"
OUTCOME_THROTTLED = "throttled"
OUTCOME_FAILED = "failed"


class UpdateDispatcher:
    """Routes each update to one handler and makes sure the chat hears back.

    For every update that is not throttled, the chat (when one can be
    determined) receives either a handler's reply, the "not sure how to
    respond" notice, or the technical-difficulties notice. ``dispatch``
    never raises.
    """

    def __init__(
        self,
        client: TelegramClient,
        usage: UsageAggregator,
        throttle: ChatThrottle,
        health: Optional[HealthMonitor] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.usage = usage
        self.throttle = throttle
        self.health = health or HealthMonitor()
        self.metrics = metrics
        self.logger = get_logger("bot.dispatcher")

        self._handlers: Dict[UpdateKind, Callable[[Update], Awaitable[bool]]] = {
            UpdateKind.MESSAGE: self._handle_message,
            UpdateKind.EDITED_MESSAGE: self._handle_edited_message,
            UpdateKind.CALLBACK_QUERY: self._handle_callback_query,
            UpdateKind.INLINE_QUERY: self._handle_inline_query,
            UpdateKind.CHANNEL_POST: self._handle_channel_post,
            UpdateKind.CHAT_MEMBER_UPDATE: self._handle_chat_member_update,
        }

    async def dispatch(self, payload: Any) -> str:
        """Process one webhook payload and return the outcome label."""
        update_type = "unknown"
        try:
            update = Update.from_payload(payload)
            update_type = update.kind.value
            set_update_context(update.update_id, update.chat_id)
            self.logger.info("Received webhook update", update_type=update_type)

            self.usage.record_update(update)

            if update.chat_id is not None and self.throttle.is_throttled(update.chat_id):
                outcome = OUTCOME_THROTTLED
            else:
                outcome = await self._route(update)
        except Exception as e:
            outcome = OUTCOME_FAILED
            self.logger.error("Webhook handling failed", error=str(e), update_type=update_type, exc_info=True)
            await self._recover(payload)
        finally:
            clear_update_context()

        if self.metrics:
            self.metrics.increment_counter("updates_total", update_type=update_type, outcome=outcome)
        return outcome

    async def _route(self, update: Update) -> str:
        handler = self._handlers.get(update.kind)
        handled = False

        if handler is not None:
            handled = await handler(update)
            if not handled:
                self.usage.record_error()
        else:
            self.logger.info("No handler for update", update_type=update.kind.value)

        if handled:
            return OUTCOME_HANDLED

        if update.chat_id is not None:
            await self._send_fallback(update.chat_id, replies.UNSURE_MESSAGE)
        return OUTCOME_UNHANDLED

    async def _recover(self, payload: Any):
        """Terminal error path: count the error and tell the chat, if any."""
        try:
            self.usage.record_error()
            chat_id = recover_chat_id(payload)
            if chat_id is None:
                self.logger.warning("No chat to notify after dispatch failure")
                return
            await self._send_fallback(chat_id, replies.TECHNICAL_DIFFICULTIES_MESSAGE)
        except Exception as e:
            self.logger.error("Dispatch recovery failed", error=str(e))

    async def _send_fallback(self, chat_id: ChatId, text: str):
        try:
            result = await self.client.send_message(chat_id, text)
            if not result.success:
                self.logger.error("Fallback message failed", chat_id=chat_id, error=result.error)
        except Exception as e:
            self.logger.error("Fallback message failed", chat_id=chat_id, error=str(e))

    async def _send(self, chat_id: ChatId, text: str) -> bool:
        result = await self.client.send_message(chat_id, text)
        return result.success

    async def _handle_message(self, update: Update) -> bool:
        try:
            message = update.body
            chat_id = message["chat"]["id"]
            text = message.get("text") or ""

            self.logger.info("Processing message", user_id=update.sender_id, text=text[:100])

            if text.startswith("/start"):
                return await self._send(chat_id, replies.WELCOME_MESSAGE)
            elif text.startswith("/help"):
                return await self._send(chat_id, replies.HELP_MESSAGE)
            elif text.startswith("/status"):
                return await self._handle_status_command(chat_id)
            return await self._send(chat_id, replies.text_reply(text, update.sender_name))
        except Exception as e:
            self.logger.error("Message handling failed", error=str(e))
            return False

    async def _handle_status_command(self, chat_id: ChatId) -> bool:
        report = self.health.get_health()
        text = replies.status_message(self.usage.get_snapshot(), report.uptime, report.memory_mb)
        return await self._send(chat_id, text)

    async def _handle_edited_message(self, update: Update) -> bool:
        try:
            return await self._send(update.body["chat"]["id"], replies.EDITED_MESSAGE_NOTICE)
        except Exception as e:
            self.logger.error("Edited message handling failed", error=str(e))
            return False

    async def _handle_callback_query(self, update: Update) -> bool:
        try:
            callback_query = update.body
            data = callback_query.get("data")

            # The acknowledgment only stops the client spinner; a failure
            # here must not keep the chat from getting its reply.
            try:
                ack = await self.client.answer_callback_query(
                    callback_query["id"], replies.callback_ack_text(data)
                )
                if not ack.success:
                    self.logger.warning("Callback acknowledgment failed", error=ack.error)
            except Exception as e:
                self.logger.warning("Callback acknowledgment failed", error=str(e))

            if update.chat_id is not None:
                return await self._send(update.chat_id, replies.callback_reply_text(data))
            return True
        except Exception as e:
            self.logger.error("Callback query handling failed", error=str(e))
            return False

    async def _handle_inline_query(self, update: Update) -> bool:
        try:
            inline_query = update.body
            results = [
                {
                    "type": "article",
                    "id": "1",
                    "title": "Echo",
                    "input_message_content": {
                        "message_text": replies.inline_echo_text(inline_query.get("query")),
                    },
                }
            ]
            result = await self.client.answer_inline_query(inline_query["id"], results)
            return result.success
        except Exception as e:
            self.logger.error("Inline query handling failed", error=str(e))
            return False

    async def _handle_channel_post(self, update: Update) -> bool:
        # Channel posts don't need a reply
        self.logger.info("Channel post received")
        return True

    async def _handle_chat_member_update(self, update: Update) -> bool:
        try:
            member_update = update.body
            chat_id = member_update["chat"]["id"]
            new_status = member_update["new_chat_member"]["status"]

            if new_status == "member":
                return await self._send(chat_id, replies.CHAT_JOIN_GREETING)
            return True
        except Exception as e:
            self.logger.error("Chat member update handling failed", error=str(e))
            return False
