"""
Shared utilities for the rule engine.

This package aggregates the cross-cutting building blocks consumed by the
engine and its context providers:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with evaluation correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and reports

Any cross-cutting logic should live here to avoid import cycles with
rule_engine. Do not import from rule_engine into shared/.
"""
