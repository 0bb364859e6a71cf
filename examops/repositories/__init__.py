"""Repositories — SQLAlchemy async implementations of the core boundary protocols.

Invariants:
    - Every query filters on tenant_id first
    - ORM rows are converted to core records before returning (no row escapes this package)
    - One session per call: each method is its own unit of work

Design Decisions:
    - Constructed with a DatabaseSessionManager, not a request-scoped session: the publication
      pipeline runs outside any HTTP request and must open its own sessions
"""
