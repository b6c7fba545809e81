"""
SQLAlchemy model for file summary embeddings.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from neurohub.db import Base


class SourceEmbedding(Base):
    """
    Summary + embedding of one repository file.

    file_path: repo-relative path ("src/lib/github.ts")
    source_code: raw file text at indexing time
    summary: model (or fallback) description of the file
    summary_embedding: JSON-encoded float array, NULL when embedding failed
    content_hash: sha256 of source_code, used to detect stale rows
    """
    __tablename__ = "source_embeddings"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path = Column(String(1024), nullable=False)
    source_code = Column(Text, nullable=False, default="")
    summary = Column(Text, nullable=False)

    # JSON-encoded embedding vector (NULL = summary stored without a vector)
    summary_embedding = Column(Text, nullable=True)

    content_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="source_embeddings")

    __table_args__ = (
        UniqueConstraint("project_id", "file_path", name="uq_source_embeddings_project_path"),
    )
