"""
Shared utilities for the Resilient Bot services.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with update correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry configuration and backoff calculation
- circuit_breaker: Resilient external call protection
- base_service: FastAPI service scaffolding (health, metrics, error handlers)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
