"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, repositories/ or db/
    - All functions are pure and deterministic (time is always passed in, never read)
    - Tenant id is an explicit argument everywhere; there is no ambient tenant context

Design Decisions:
    - Functional core separated from imperative shell: services fetch, core decides, services write
"""
