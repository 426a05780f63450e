"""Pydantic request/response models for challenge endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class ChallengeCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    description: str = Field("", max_length=2000)
    day: date
    is_active: bool = True


class ChallengeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    title: str
    description: str
    day: date
    is_active: bool


class CompleteChallengeRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class CompletionResponse(BaseModel):
    model_config = {"from_attributes": True}

    username: str
    challenge_id: int
    completed_at: datetime


class CompleteChallengeResponse(BaseModel):
    detail: str
    completion: CompletionResponse
