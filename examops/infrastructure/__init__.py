"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/
    - All external failures mapped to typed errors from core/errors.py

Design Decisions:
    - Resilient wrappers over raw clients (database, Redis, payment gateway)
"""
