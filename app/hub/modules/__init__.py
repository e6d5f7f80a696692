"""
Feature modules live under this package.

Each module owns its routes and service code, and reuses the platform
primitives (identity gate, customer store, CSRF, config).
"""
