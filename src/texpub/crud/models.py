"""Database table definitions for indexed exercises"""

from typing import Any, Optional

from sqlalchemy import Column, JSON, String
from sqlmodel import Field, SQLModel


class Exercise(SQLModel, table=True):
    """A compiled exercise as served to readers; content blocks kept as JSON"""
    __tablename__ = "exercises"
    uuid: str = Field(primary_key=True)
    title: str = Field(..., index=True, nullable=False)
    chapter: str = Field(..., index=True, nullable=False)
    subchapter: Optional[str] = Field(default=None, index=True)
    theme: Optional[str] = None
    difficulty: Optional[int] = Field(default=None, index=True)
    author: Optional[str] = Field(default=None, index=True)
    organization: Optional[str] = None
    video_id: Optional[str] = None
    created_at: str = Field(..., nullable=False)
    updated_at: str = Field(..., nullable=False)
    content_json: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    source_hash: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
