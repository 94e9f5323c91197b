from typing import List, Optional
from pydantic import BaseModel, Field

from loomio.constants.constants import DEFAULT_TAG_COLOR

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class TagCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    color: str = Field(DEFAULT_TAG_COLOR, pattern=HEX_COLOR_PATTERN)
    community_id: int


class TagUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class TaskTagsRequest(BaseModel):
    """Replaces the task's tags with exactly these."""
    tag_ids: List[int] = Field(default_factory=list)
