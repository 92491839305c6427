"""
Rate limiting package for the Bot Service.

Holds the fixed-window per-chat throttle applied to inbound updates.
"""
