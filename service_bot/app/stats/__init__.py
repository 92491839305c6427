"""
Usage statistics derived from the TTL store.
"""
