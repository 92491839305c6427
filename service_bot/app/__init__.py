"""
Bot Service package for the Resilient Bot.

The service receives Telegram webhook updates and always answers them:
- Dispatch: classify each update and route it to one handler
- Fallbacks: a generic or technical-difficulties reply when handling fails
- Throttling: fixed-window per-chat budget backed by the TTL store
- Outbound calls: retries, backoff and a circuit breaker around the Bot API

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: Telegram Bot API client.
- app.caching: In-process TTL store.
- app.stats: Usage counters derived from the store.
- app.ratelimit: Per-chat throttle.
- app.webhook: Update model, reply texts, and the dispatcher.
- app.monitoring: Process health for the status endpoint.
"""
