"""
Reply texts and the free-text reply rules.
"""

from datetime import datetime
from typing import Optional

from ..stats.usage import UsageSnapshot


TECHNICAL_DIFFICULTIES_MESSAGE = (
    "I'm sorry, I'm experiencing technical difficulties. Please try again later."
)
UNSURE_MESSAGE = (
    "I received your message but I'm not sure how to respond to this type of content."
)
EDITED_MESSAGE_NOTICE = (
    "I noticed you edited your message. I don't process edited messages, "
    "but feel free to send a new one!"
)
CHAT_JOIN_GREETING = "Thanks for adding me to this chat! Type /help to see what I can do."
HOW_ARE_YOU_REPLY = "I'm doing great! Thanks for asking. How can I help you today?"

WELCOME_MESSAGE = """\
🤖 Welcome to the Telegram Bot!

I'm a robust bot that never stops responding. Here's what I can do:

/help - Show this help message
/status - Check bot status
/echo [text] - Echo your message back

I'm designed to handle errors gracefully and always respond to your messages!"""

HELP_MESSAGE = """\
📚 Bot Commands:

/start - Welcome message
/help - Show this help
/status - Bot health status
/echo [text] - Echo your message

🔧 Features:
• Always responds to messages
• Handles errors gracefully
• Automatic retry with backoff
• Circuit breaker protection
• Rate limiting protection

Send me any message and I'll respond!"""

ECHO_PREFIX = "/echo "
GREETING_KEYWORDS = ("hello", "hi")


def status_message(snapshot: UsageSnapshot, uptime_seconds: float, memory_mb: float) -> str:
    return (
        "🟢 Bot Status: Online\n"
        "\n"
        "📊 Statistics:\n"
        f"• Total Messages: {snapshot.total_messages}\n"
        f"• Active Users: {snapshot.active_users}\n"
        f"• Uptime: {int(uptime_seconds)}s\n"
        f"• Memory: {round(memory_mb)}MB\n"
        "\n"
        "✅ All systems operational!"
    )


def text_reply(text: str, first_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Pick a reply for free text. Rules are checked in order; first match wins."""
    lowered = text.lower()

    if lowered.startswith(ECHO_PREFIX):
        return text[len(ECHO_PREFIX):]
    # Substring match, so "hi" also fires inside words like "this"
    if any(keyword in lowered for keyword in GREETING_KEYWORDS):
        return f"Hello {first_name or 'there'}! 👋"
    if "how are you" in lowered:
        return HOW_ARE_YOU_REPLY
    if "time" in lowered:
        current = now or datetime.now()
        return f"Current time: {current.strftime('%Y-%m-%d %H:%M:%S')}"
    return (
        f'I received your message: "{text}"\n\n'
        "I'm a simple bot, but I always respond! Try /help for more commands."
    )


def callback_ack_text(data: Optional[str]) -> str:
    return f"You clicked: {data}"


def callback_reply_text(data: Optional[str]) -> str:
    return f"Button clicked: {data}"


def inline_echo_text(query: Optional[str]) -> str:
    return f"You searched for: {query}"
