from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    code: str
    message: str
    current_status: str | None = None
    detail: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorBody


class StatusResponse(BaseModel):
    status: str
