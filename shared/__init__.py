"""
Shared utilities for the access rules engine.

This package aggregates common building blocks consumed by the engine:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with correlation context
- errors: Canonical error types and responses
- test_helpers: Actor factories for tests
"""
