# FILE: neurohub/projects/service.py
"""
Project registry.

A project is one linked GitHub repository. Deletion is soft: the row keeps
its commits and file embeddings but disappears from every lookup here.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from neurohub.errors import ConfigurationError, PersistenceError, ProjectNotFoundError
from neurohub.github.client import parse_github_url
from neurohub.projects import models, schemas

logger = logging.getLogger(__name__)


def _live(db: Session):
    return db.query(models.Project).filter(models.Project.deleted_at.is_(None))


def create_project(db: Session, data: schemas.ProjectCreate) -> models.Project:
    """Register a repository. Raises ConfigurationError on a bad or duplicate URL."""
    ref = parse_github_url(data.github_url)
    github_url = f"https://github.com/{ref.full_name}"

    if get_project_by_url(db, github_url):
        raise ConfigurationError(f"Repository already linked: {github_url}")

    project = models.Project(
        name=data.name.strip(),
        github_url=github_url,
        github_token=(data.github_token or None),
    )
    try:
        db.add(project)
        db.commit()
        db.refresh(project)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to create project {data.name}: {e}") from e

    logger.info(f"[projects] created project {project.id} for {ref.full_name}")
    return project


def get_project(db: Session, project_id: str) -> Optional[models.Project]:
    return _live(db).filter(models.Project.id == project_id).first()


def require_project(db: Session, project_id: str) -> models.Project:
    project = get_project(db, project_id)
    if not project:
        raise ProjectNotFoundError(project_id)
    return project


def get_project_by_url(db: Session, github_url: str) -> Optional[models.Project]:
    return _live(db).filter(models.Project.github_url == github_url).first()


def list_projects(db: Session) -> List[models.Project]:
    return _live(db).order_by(models.Project.created_at.desc()).all()


def soft_delete_project(db: Session, project_id: str) -> bool:
    project = get_project(db, project_id)
    if not project:
        return False
    try:
        project.deleted_at = datetime.utcnow()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete project {project_id}: {e}") from e
    logger.info(f"[projects] soft-deleted project {project_id}")
    return True
