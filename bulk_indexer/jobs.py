from typing import Any, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, model_validator

BULK_REINDEX = "bulk_reindex"
PROCESS_BATCH = "process_batch"


class JobPayload(BaseModel):
    kind: Literal["bulk_reindex", "process_batch"] = BULK_REINDEX
    class_name: str
    index_name: str
    batch_id: Optional[int] = None
    record_ids: Optional[List[str]] = None
    min_id: Optional[int] = None
    max_id: Optional[int] = None
    method_name: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self) -> "JobPayload":
        has_ids = self.record_ids is not None
        has_range = self.min_id is not None or self.max_id is not None
        if has_ids == has_range:
            raise ValueError("exactly one of record_ids or min_id/max_id is required")
        if has_range and (self.min_id is None or self.max_id is None):
            raise ValueError("min_id and max_id must be given together")
        if self.kind == PROCESS_BATCH and not has_ids:
            raise ValueError("process_batch jobs carry record_ids")
        return self

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JobRunner(Protocol):
    def enqueue(self, payload: JobPayload) -> Any: ...
