"""
Unit tests for reply texts.
"""

from datetime import datetime

from service_bot.app.stats.usage import UsageSnapshot
from service_bot.app.webhook import replies


class TestTextReply:
    """Test cases for the free-text reply rules."""

    def test_echo_command(self):
        assert replies.text_reply("/echo hello world") == "hello world"

    def test_echo_prefix_is_case_insensitive(self):
        assert replies.text_reply("/ECHO Loud") == "Loud"

    def test_echo_beats_greeting(self):
        assert replies.text_reply("/echo hi there") == "hi there"

    def test_greeting_uses_first_name(self):
        assert replies.text_reply("Hello bot", "Alice") == "Hello Alice! 👋"

    def test_greeting_without_name(self):
        assert replies.text_reply("hi") == "Hello there! 👋"

    def test_greeting_matches_substring(self):
        assert replies.text_reply("this is fine", "Bob") == "Hello Bob! 👋"

    def test_how_are_you(self):
        assert replies.text_reply("How are you?") == replies.HOW_ARE_YOU_REPLY

    def test_time(self):
        now = datetime(2024, 5, 1, 12, 30, 15)

        assert replies.text_reply("what time is it", now=now) == "Current time: 2024-05-01 12:30:15"

    def test_default_echo(self):
        reply = replies.text_reply("ping")

        assert reply.startswith('I received your message: "ping"')
        assert "/help" in reply


class TestFixedTexts:
    """Test cases for the canned replies."""

    def test_welcome_mentions_commands(self):
        assert "Welcome" in replies.WELCOME_MESSAGE
        for command in ("/help", "/status", "/echo"):
            assert command in replies.WELCOME_MESSAGE

    def test_status_message(self):
        snapshot = UsageSnapshot(total_messages=12, active_users=3, errors_24h=0, last_activity=None)

        text = replies.status_message(snapshot, uptime_seconds=125.7, memory_mb=48.6)

        assert "Total Messages: 12" in text
        assert "Active Users: 3" in text
        assert "Uptime: 125s" in text
        assert "Memory: 49MB" in text

    def test_callback_texts(self):
        assert replies.callback_ack_text("X") == "You clicked: X"
        assert replies.callback_reply_text("X") == "Button clicked: X"

    def test_inline_text(self):
        assert replies.inline_echo_text("cats") == "You searched for: cats"
