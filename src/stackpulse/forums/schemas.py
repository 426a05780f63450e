"""Pydantic request/response models for forum endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ForumCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = Field("", max_length=2000)
    type: Literal["public", "private"] = "public"
    created_by: str = Field(..., min_length=1, max_length=64)


class MembershipRequest(BaseModel):
    """join / cancel / leave, acting on ``username`` itself."""

    username: str = Field(..., min_length=1, max_length=64)


class ModerationRequest(BaseModel):
    """approve / ban / unban, performed by ``moderator`` on ``username``."""

    moderator: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=64)


class MembershipResponse(BaseModel):
    forum_id: int
    username: str
    state: str
    is_moderator: bool
    can_post: bool
