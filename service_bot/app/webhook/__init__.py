"""
Webhook processing package.

Update classification, reply texts, and the guaranteed-response dispatcher.
"""
