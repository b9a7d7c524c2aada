"""Pydantic schemas for posts.

Learn: Separate "Create"/"Update" schemas (input) from "Read" schemas
(output). Update fields are all optional — only what the client sends
is written (exclude_unset).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    body: str = ""
    channels: list[str] = Field(default_factory=list)


class PostUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    body: Optional[str] = None
    channels: list[str] = Field(default_factory=list)


class PostRead(BaseModel):
    id: int
    title: str
    slug: str
    body: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
