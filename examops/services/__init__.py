"""Services Layer — orchestration around the pure core.

Invariants:
    - Services hold no domain rules of their own; decisions come from core/
    - All IO goes through the Protocols in core/repository_protocols.py

Design Decisions:
    - One service per use case (scheduler, publisher, pool, reader, payments)
"""
