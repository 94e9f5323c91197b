from typing import List, Optional
from pydantic import BaseModel, Field

from loomio.constants.constants import SubtaskStatus


class SubtaskCreateRequest(BaseModel):
    """Request schema for adding a subtask; without a position it goes last."""
    title: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    assigned_to: Optional[int] = None
    position: Optional[int] = Field(None, ge=0)


class SubtaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[SubtaskStatus] = None
    assigned_to: Optional[int] = None
    position: Optional[int] = Field(None, ge=0)


class SubtaskReorderRequest(BaseModel):
    subtask_ids: List[int]
