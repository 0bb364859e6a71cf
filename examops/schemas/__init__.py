"""Pydantic Schemas — request/response validation for API endpoints.

Invariants:
    - Schemas validate at system boundary (user input, API responses)
    - Schemas convert to core records; services never see a pydantic model

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
