from typing import Optional
from pydantic import BaseModel, Field

from loomio.constants.constants import CommunityRole, COMMUNITY_CODE_LENGTH


class CommunityCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class CommunityUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class JoinCommunityRequest(BaseModel):
    community_code: str = Field(..., min_length=COMMUNITY_CODE_LENGTH, max_length=COMMUNITY_CODE_LENGTH)


class MemberRoleUpdateRequest(BaseModel):
    role: CommunityRole
