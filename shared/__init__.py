"""
Shared utilities for the ABAC decision engine.

This package aggregates the ambient building blocks the engine relies on:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics for decisions and attribute lookups
- errors: Canonical error types and responses
- circuit_breaker: Protection for attribute store reads

Do not import from abac_engine into shared/.
"""
