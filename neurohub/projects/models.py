# neurohub/projects/models.py
"""
SQLAlchemy ORM model for projects.

A project links one GitHub repository. The pipeline only reads `github_url`
and `github_token`; commits and file embeddings hang off the project and are
removed with it.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from neurohub.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False, index=True)
    github_url = Column(String(500), nullable=False, index=True)
    github_token = Column(Text, nullable=True)  # Optional per-project access token
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete marker

    # Relationships
    commits = relationship("Commit", back_populates="project", cascade="all, delete-orphan")
    source_embeddings = relationship("SourceEmbedding", back_populates="project", cascade="all, delete-orphan")


# Register related models so the relationship() targets above always resolve
from neurohub.commits.models import Commit  # noqa: E402,F401
from neurohub.embeddings.models import SourceEmbedding  # noqa: E402,F401
