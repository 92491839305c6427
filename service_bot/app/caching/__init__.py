"""
Bot caching package.

Provides the in-process TTL store that backs per-chat throttling and usage
counters. Entries are short-lived and never persisted.
"""
