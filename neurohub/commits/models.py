"""
SQLAlchemy model for ingested commits.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from neurohub.db import Base


class Commit(Base):
    """
    One summarized commit of a project's repository.

    (project_id, commit_hash) is unique: the ingestor filters known hashes
    before inserting and the constraint catches concurrent races.
    Rows are never updated after insert.
    """
    __tablename__ = "commits"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    commit_hash = Column(String(64), nullable=False)
    commit_message = Column(Text, nullable=False, default="")
    commit_author_name = Column(String(255), nullable=False, default="")
    commit_author_avatar = Column(String(500), nullable=False, default="")
    commit_date = Column(DateTime, nullable=True, index=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="commits")

    __table_args__ = (
        UniqueConstraint("project_id", "commit_hash", name="uq_commits_project_hash"),
    )
