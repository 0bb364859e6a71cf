"""Publication Schemas — responses for the publication and result endpoints."""

from pydantic import BaseModel


class PublicationTicketResponse(BaseModel):
    exam_id: str
    status: str


class PublicationProgressResponse(BaseModel):
    exam_id: str
    total_records: int
    processed_offset: int
    status: str
    updated_at: str | None = None
    job_active: bool = False


class StudentResultResponse(BaseModel):
    source: str
    result: dict
