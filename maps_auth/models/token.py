from pydantic import BaseModel, Field


class ProblemDetails(BaseModel):
    """RFC 7807 problem body returned when a token cannot be issued."""
    title: str = Field(..., description="Short, fixed summary of the failure")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field("", description="Message of the underlying credential error")
