# FILE: neurohub/projects/schemas.py
"""
Pydantic schemas for projects and their commit log.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# ============== PROJECT ==============

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    github_url: str = Field(..., min_length=1)
    github_token: Optional[str] = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    github_url: str
    created_at: datetime
    updated_at: datetime


# ============== COMMITS ==============

class CommitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: str
    commit_hash: str
    commit_message: str
    commit_author_name: str
    commit_author_avatar: str
    commit_date: Optional[datetime]
    summary: Optional[str]


class PullResponse(BaseModel):
    project_id: str
    processed: int
    total: int


# ============== STATS ==============

class ProjectStats(BaseModel):
    project_id: str
    total_commits: int
    last_commit_date: Optional[datetime] = None
    files_indexed: int
    files_with_vector: int
    files_without_vector: int
