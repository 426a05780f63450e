"""Pydantic request/response models for question, answer and comment endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class QuestionCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    text: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list, max_length=5)
    asked_by: str = Field(..., min_length=1, max_length=64)
    forum_id: int | None = None
    ask_date_time: datetime | None = None


class VoteRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class AnswerCreateRequest(BaseModel):
    question_id: int
    text: str = Field(..., min_length=1)
    ans_by: str = Field(..., min_length=1, max_length=64)
    ans_date_time: datetime | None = None


class CommentCreateRequest(BaseModel):
    parent_type: Literal["question", "answer"]
    parent_id: int
    text: str = Field(..., min_length=1, max_length=500)
    comment_by: str = Field(..., min_length=1, max_length=64)
    comment_date_time: datetime | None = None


class ReadStatusRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)


class ReadStatusResponse(BaseModel):
    post_id: int
    username: str
    read: bool
