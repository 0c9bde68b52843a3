"""
Feature modules live under this package.

Each module owns its models, service functions and JSON blueprint, and reuses
platform primitives (auth, RBAC, audit, DB session) from ``app.pms``.
"""
