"""Pydantic request/response models for user endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    biography: str = Field("", max_length=500)
    emails: list[EmailStr] = Field(default_factory=list)


class BiographyRequest(BaseModel):
    biography: str = Field(..., max_length=500)


class EmailAddRequest(BaseModel):
    email: EmailStr


class EmailReplaceRequest(BaseModel):
    current: EmailStr
    new: EmailStr


class BadgesRequest(BaseModel):
    badges: list[str] = Field(..., min_length=1)


class BannersRequest(BaseModel):
    banners: list[str] = Field(..., min_length=1)


class PinnedBadgeRequest(BaseModel):
    badge: str | None = None


class SelectedBannerRequest(BaseModel):
    banner: str = Field(..., min_length=1, max_length=64)


class SubscriptionRequest(BaseModel):
    kind: Literal["browser", "email"]


class FrequencyRequest(BaseModel):
    frequency: Literal["hourly", "daily", "weekly"]


class StreakUpdateRequest(BaseModel):
    activity: Literal["vote", "question", "answer"]
    timestamp: datetime | None = None


class StreakUpdateResponse(BaseModel):
    username: str
    streak: list[date]
    awarded: list[str] = []


class VoteCountResponse(BaseModel):
    username: str
    votes: int
