"""
Shared utilities for the federated GraphQL gateway and its subgraphs.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request/session correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry decorators for store adapters
- circuit_breaker: Resilient subgraph call protection
- session_codec: Transport encoding of session snapshots and mutations
- session_context: Subgraph-side session view and mutation channel

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
