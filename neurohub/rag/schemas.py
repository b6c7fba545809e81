"""
Pydantic schemas for the /rag endpoints.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class IndexRequest(BaseModel):
    """Request schema for repository indexing."""
    project_id: str
    repo_url: Optional[str] = None  # Defaults to the project's github_url
    github_token: Optional[str] = None


class IndexResponse(BaseModel):
    """Response schema for indexing operations."""
    project_id: str
    success_count: int
    error_count: int
    skipped_count: int
    refreshed_count: int
    removed_count: int = 0


class SearchRequest(BaseModel):
    """Request schema for semantic file search."""
    project_id: str
    question: str = Field(..., min_length=1)
    top_k: int = Field(5, ge=1, le=20)
    include_source: bool = False


class FileReferenceOut(BaseModel):
    """Single matching file with its similarity score."""
    file_path: str
    similarity: float  # Cosine similarity
    summary: str
    source_code: Optional[str] = None


class SearchResponse(BaseModel):
    question: str
    results: List[FileReferenceOut]


class AskRequest(BaseModel):
    project_id: str
    question: str = Field(..., min_length=1)
    top_k: int = Field(5, ge=1, le=20)
