"""
Shared utilities for the Offline Bundle service.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request/session correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for transient upstream failures
- circuit_breaker: Resilient upstream call protection
- base_service: FastAPI application skeleton with health and metrics routes

Do not import from service_* packages into shared/.
"""
