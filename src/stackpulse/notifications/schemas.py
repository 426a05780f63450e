"""Pydantic request models for notification endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class NotificationCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    text: str = Field("", max_length=2000)
    kind: Literal["browser", "email"] = "browser"
    target_user: str = Field(..., min_length=1, max_length=64)
