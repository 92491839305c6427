"""
Telegram bot webhook service.
"""
