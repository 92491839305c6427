"""
Unit tests for the update dispatcher.
"""

from unittest.mock import AsyncMock, patch

import pytest

from service_bot.app.adapters.telegram_client import TelegramClient
from service_bot.app.caching.ttl_store import TTLStore
from service_bot.app.monitoring.health import HealthMonitor
from service_bot.app.ratelimit.throttle import ChatThrottle
from service_bot.app.stats.usage import UsageAggregator
from service_bot.app.webhook import replies
from service_bot.app.webhook.dispatcher import (
    OUTCOME_FAILED,
    OUTCOME_HANDLED,
    OUTCOME_THROTTLED,
    OUTCOME_UNHANDLED,
    UpdateDispatcher,
)
from service_bot.app.webhook.updates import UpdateKind
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock, TelegramAPIStub, UpdateFactory, api_error


class TestUpdateDispatcher:
    """Test cases for UpdateDispatcher."""

    @pytest.fixture
    def stub(self):
        return TelegramAPIStub()

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("bot")

    @pytest.fixture
    def client(self, stub, clock):
        """Create client over the API stub with sleeps disabled."""
        client = TelegramClient("TEST_TOKEN", transport=stub.transport, clock=clock)
        with patch.object(client, "_sleep", new_callable=AsyncMock):
            yield client

    @pytest.fixture
    def usage(self, clock):
        return UsageAggregator(TTLStore(clock=clock))

    @pytest.fixture
    def dispatcher(self, client, usage, clock, metrics):
        """Create dispatcher wired to fake-clock collaborators."""
        return UpdateDispatcher(
            client,
            usage,
            ChatThrottle(usage.store, limit=10, window_seconds=60),
            health=HealthMonitor(clock=clock, memory_reader=lambda: 42.0),
            metrics=metrics,
        )

    # Commands and free text

    @pytest.mark.asyncio
    async def test_start_command(self, dispatcher, stub):
        """Test /start produces exactly one welcome message to the chat."""
        outcome = await dispatcher.dispatch(UpdateFactory.message("/start", chat_id=42))

        assert outcome == OUTCOME_HANDLED
        sent = stub.calls_for("sendMessage")
        assert len(sent) == 1
        assert sent[0]["chat_id"] == 42
        assert "Welcome" in sent[0]["text"]

    @pytest.mark.asyncio
    async def test_help_command(self, dispatcher, stub):
        await dispatcher.dispatch(UpdateFactory.message("/help"))

        assert stub.calls_for("sendMessage")[0]["text"] == replies.HELP_MESSAGE

    @pytest.mark.asyncio
    async def test_status_command(self, dispatcher, stub):
        """Test /status reports the live counters."""
        await dispatcher.dispatch(UpdateFactory.message("hey", user_id=1))
        await dispatcher.dispatch(UpdateFactory.message("/status", user_id=2))

        text = stub.calls_for("sendMessage")[-1]["text"]
        assert "Total Messages: 2" in text
        assert "Active Users: 2" in text
        assert "Memory: 42MB" in text

    @pytest.mark.asyncio
    async def test_greeting_uses_sender_name(self, dispatcher, stub):
        """Test "hello" is answered by name."""
        await dispatcher.dispatch(UpdateFactory.message("hello", first_name="Alice"))

        sent = stub.calls_for("sendMessage")
        assert len(sent) == 1
        assert "Alice" in sent[0]["text"]

    @pytest.mark.asyncio
    async def test_echo_command(self, dispatcher, stub):
        await dispatcher.dispatch(UpdateFactory.message("/echo ping pong"))

        assert stub.calls_for("sendMessage")[0]["text"] == "ping pong"

    @pytest.mark.asyncio
    async def test_message_without_text(self, dispatcher, stub):
        """Test a sticker-like message still gets a reply."""
        payload = UpdateFactory.message("")
        del payload["message"]["text"]

        outcome = await dispatcher.dispatch(payload)

        assert outcome == OUTCOME_HANDLED
        assert len(stub.calls_for("sendMessage")) == 1

    # Other variants

    @pytest.mark.asyncio
    async def test_edited_message(self, dispatcher, stub):
        await dispatcher.dispatch(UpdateFactory.edited_message(chat_id=5))

        assert stub.calls_for("sendMessage") == [{"chat_id": 5, "text": replies.EDITED_MESSAGE_NOTICE}]

    @pytest.mark.asyncio
    async def test_callback_query(self, dispatcher, stub):
        """Test the callback is acknowledged before the chat reply."""
        outcome = await dispatcher.dispatch(UpdateFactory.callback_query(data="X", callback_id="cb1", chat_id=42))

        assert outcome == OUTCOME_HANDLED
        assert stub.methods == ["answerCallbackQuery", "sendMessage"]
        assert stub.calls_for("answerCallbackQuery")[0]["callback_query_id"] == "cb1"
        assert "X" in stub.calls_for("sendMessage")[0]["text"]

    @pytest.mark.asyncio
    async def test_callback_ack_failure_still_replies(self, dispatcher, stub):
        """Test a failed acknowledgment does not block the reply."""
        stub.fail_always("answerCallbackQuery", api_error(400, "Bad Request: query is too old"))

        outcome = await dispatcher.dispatch(UpdateFactory.callback_query(data="Y"))

        assert outcome == OUTCOME_HANDLED
        assert stub.calls_for("sendMessage")[0]["text"] == "Button clicked: Y"

    @pytest.mark.asyncio
    async def test_callback_without_message_only_acknowledges(self, dispatcher, stub):
        outcome = await dispatcher.dispatch(UpdateFactory.callback_query(chat_id=None))

        assert outcome == OUTCOME_HANDLED
        assert stub.methods == ["answerCallbackQuery"]

    @pytest.mark.asyncio
    async def test_inline_query(self, dispatcher, stub):
        """Test inline queries are answered with one echo article."""
        outcome = await dispatcher.dispatch(UpdateFactory.inline_query("cats", inline_id="iq1"))

        assert outcome == OUTCOME_HANDLED
        assert stub.methods == ["answerInlineQuery"]
        params = stub.calls_for("answerInlineQuery")[0]
        assert params["inline_query_id"] == "iq1"
        assert params["results"][0]["id"] == "1"
        assert params["results"][0]["title"] == "Echo"
        assert params["results"][0]["input_message_content"]["message_text"] == "You searched for: cats"

    @pytest.mark.asyncio
    async def test_channel_post_is_silent(self, dispatcher, stub):
        outcome = await dispatcher.dispatch(UpdateFactory.channel_post())

        assert outcome == OUTCOME_HANDLED
        assert stub.calls == []

    @pytest.mark.asyncio
    async def test_added_to_chat_greets(self, dispatcher, stub):
        await dispatcher.dispatch(UpdateFactory.my_chat_member(status="member", chat_id=-200))

        assert stub.calls_for("sendMessage") == [{"chat_id": -200, "text": replies.CHAT_JOIN_GREETING}]

    @pytest.mark.asyncio
    async def test_other_member_status_is_silent(self, dispatcher, stub):
        outcome = await dispatcher.dispatch(UpdateFactory.my_chat_member(status="kicked"))

        assert outcome == OUTCOME_HANDLED
        assert stub.calls == []

    @pytest.mark.asyncio
    async def test_unknown_update(self, dispatcher, stub, usage):
        """Test an unrecognized update without a chat produces no calls."""
        outcome = await dispatcher.dispatch(UpdateFactory.poll())

        assert outcome == OUTCOME_UNHANDLED
        assert stub.calls == []
        assert usage.get_snapshot().errors_24h == 0
        assert usage.get_snapshot().total_messages == 1

    # Throttling

    @pytest.mark.asyncio
    async def test_eleventh_update_is_throttled(self, dispatcher, stub, clock):
        """Test the 11th update from a chat within 60s gets no API call."""
        for _ in range(10):
            assert await dispatcher.dispatch(UpdateFactory.message("ping", chat_id=42)) == OUTCOME_HANDLED
            clock.advance(1)
        calls_before = len(stub.calls)

        outcome = await dispatcher.dispatch(UpdateFactory.message("ping", chat_id=42))

        assert outcome == OUTCOME_THROTTLED
        assert len(stub.calls) == calls_before

    @pytest.mark.asyncio
    async def test_throttle_releases_after_window(self, dispatcher, stub, clock):
        for _ in range(11):
            await dispatcher.dispatch(UpdateFactory.message("ping", chat_id=42))

        clock.advance(61)

        assert await dispatcher.dispatch(UpdateFactory.message("ping", chat_id=42)) == OUTCOME_HANDLED

    @pytest.mark.asyncio
    async def test_inline_queries_are_not_throttled(self, dispatcher, stub):
        for _ in range(12):
            await dispatcher.dispatch(UpdateFactory.inline_query())

        assert len(stub.calls_for("answerInlineQuery")) == 12

    # Guaranteed response

    @pytest.mark.asyncio
    async def test_handler_exception_sends_technical_difficulties(self, dispatcher, stub, usage):
        """Test a raising handler yields exactly one apology to the chat."""
        dispatcher._handlers[UpdateKind.MESSAGE] = AsyncMock(side_effect=RuntimeError("boom"))

        outcome = await dispatcher.dispatch(UpdateFactory.message("hello", chat_id=42))

        assert outcome == OUTCOME_FAILED
        assert stub.calls_for("sendMessage") == [
            {"chat_id": 42, "text": replies.TECHNICAL_DIFFICULTIES_MESSAGE}
        ]
        assert usage.get_snapshot().errors_24h == 1

    @pytest.mark.asyncio
    async def test_failure_before_routing_is_recovered(self, dispatcher, stub, usage):
        """Test an error outside the handlers still reaches the chat."""
        with patch.object(usage, "record_update", side_effect=RuntimeError("store down")):
            outcome = await dispatcher.dispatch(UpdateFactory.callback_query(chat_id=77))

        assert outcome == OUTCOME_FAILED
        assert stub.calls_for("sendMessage") == [
            {"chat_id": 77, "text": replies.TECHNICAL_DIFFICULTIES_MESSAGE}
        ]

    @pytest.mark.asyncio
    async def test_failed_reply_falls_back_to_unsure_notice(self, dispatcher, stub, usage):
        """Test a handler whose send fails triggers the fallback message."""
        stub.queue("sendMessage", *[api_error(400, "Bad Request")] * 3)

        outcome = await dispatcher.dispatch(UpdateFactory.message("hello", chat_id=42))

        assert outcome == OUTCOME_UNHANDLED
        sent = stub.calls_for("sendMessage")
        assert len(sent) == 4
        assert sent[-1] == {"chat_id": 42, "text": replies.UNSURE_MESSAGE}
        assert usage.get_snapshot().errors_24h == 1

    @pytest.mark.asyncio
    async def test_dispatch_survives_total_api_outage(self, dispatcher, stub):
        """Test dispatch returns normally when every API call fails."""
        stub.fail_always("sendMessage", api_error(502, "Bad Gateway"))

        outcome = await dispatcher.dispatch(UpdateFactory.message("hello"))

        assert outcome == OUTCOME_UNHANDLED

    @pytest.mark.asyncio
    async def test_open_breaker_makes_no_calls(self, dispatcher, client, stub):
        """Test an open breaker fast-fails both the reply and the fallback."""
        for _ in range(client.circuit_breaker.failure_threshold):
            client.circuit_breaker.record_failure()

        outcome = await dispatcher.dispatch(UpdateFactory.message("hello"))

        assert outcome == OUTCOME_UNHANDLED
        assert stub.calls == []

    @pytest.mark.asyncio
    async def test_malformed_body_without_chat(self, dispatcher, stub, usage):
        """Test a non-object message body is counted as an error and dropped."""
        outcome = await dispatcher.dispatch({"update_id": 1, "message": "garbage"})

        assert outcome == OUTCOME_UNHANDLED
        assert stub.calls == []
        assert usage.get_snapshot().errors_24h == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, [], "text", {}])
    async def test_non_object_payloads(self, dispatcher, stub, payload):
        outcome = await dispatcher.dispatch(payload)

        assert outcome == OUTCOME_UNHANDLED
        assert stub.calls == []

    # Bookkeeping

    @pytest.mark.asyncio
    async def test_usage_recorded_for_every_update(self, dispatcher, usage):
        await dispatcher.dispatch(UpdateFactory.message("hi", user_id=1))
        await dispatcher.dispatch(UpdateFactory.inline_query(user_id=2))
        await dispatcher.dispatch(UpdateFactory.channel_post())

        snapshot = usage.get_snapshot()
        assert snapshot.total_messages == 3
        assert snapshot.active_users == 2
        assert snapshot.last_activity is not None

    @pytest.mark.asyncio
    async def test_outcome_metrics(self, dispatcher, metrics):
        await dispatcher.dispatch(UpdateFactory.message("/start"))
        await dispatcher.dispatch(UpdateFactory.poll())

        assert metrics.get_sample_value(
            "updates_total", update_type="message", outcome=OUTCOME_HANDLED
        ) == 1.0
        assert metrics.get_sample_value(
            "updates_total", update_type="other", outcome=OUTCOME_UNHANDLED
        ) == 1.0
