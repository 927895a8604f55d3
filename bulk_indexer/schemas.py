from typing import Optional

from pydantic import BaseModel, Field


class ImportRequest(BaseModel):
    class_name: Optional[str] = None
    index_name: Optional[str] = None
    mode: str = Field(default="inline")
    full: bool = False
    resume: bool = False
    method_name: Optional[str] = None


class ImportResponse(BaseModel):
    version: str = "v1"
    trace_id: str
    request_id: str
    index_name: str
    mode: str
    batches: int


class BatchesLeftResponse(BaseModel):
    version: str = "v1"
    trace_id: str
    request_id: str
    index_name: str
    batches_left: int


class ProcessQueueRequest(BaseModel):
    class_name: Optional[str] = None
    index_name: Optional[str] = None
    inline: bool = False
    limit: Optional[int] = Field(default=None, ge=1)


class ProcessQueueResponse(BaseModel):
    version: str = "v1"
    trace_id: str
    request_id: str
    index_name: str
    batches: int
    queue_length: int


class HealthResponse(BaseModel):
    status: str
    trace_id: str
    request_id: str
