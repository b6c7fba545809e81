# FILE: neurohub/projects/router.py
"""
FastAPI routes for projects and their commit log.

POST   /projects                         link a repository (ingests in background)
GET    /projects                         live projects, newest first
GET    /projects/{id}                    one project
DELETE /projects/{id}                    soft delete
POST   /projects/{id}/commits/refresh    pull unseen commits now
GET    /projects/{id}/commits            stored commits, newest first
GET    /projects/{id}/stats              commit + file index counters
"""
import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from neurohub.commits import service as commit_service
from neurohub.db import get_db
from neurohub.errors import NeuroHubError
from neurohub.http_errors import to_http_exception
from neurohub.rag import config

from . import schemas, service
from .ingest import ingest_project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


# ============== PROJECTS ==============

@router.post("", response_model=schemas.ProjectOut, status_code=201)
def create_project(
    data: schemas.ProjectCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        project = service.create_project(db, data)
    except NeuroHubError as e:
        raise to_http_exception(e)

    if config.AUTO_INGEST:
        background_tasks.add_task(ingest_project, project.id)
        logger.info(f"[projects] scheduled ingestion for {project.id}")
    return project


@router.get("", response_model=List[schemas.ProjectOut])
def list_projects(db: Session = Depends(get_db)):
    return service.list_projects(db)


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(project_id: str, db: Session = Depends(get_db)):
    project = service.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.delete("/{project_id}", status_code=204)
def delete_project(project_id: str, db: Session = Depends(get_db)):
    try:
        success = service.soft_delete_project(db, project_id)
    except NeuroHubError as e:
        raise to_http_exception(e)
    if not success:
        raise HTTPException(status_code=404, detail="Project not found")
    return None


# ============== COMMITS ==============

@router.post("/{project_id}/commits/refresh", response_model=schemas.PullResponse)
async def refresh_commits(project_id: str, db: Session = Depends(get_db)):
    try:
        result = await commit_service.pull_commits(db, project_id)
    except NeuroHubError as e:
        raise to_http_exception(e)
    return schemas.PullResponse(
        project_id=project_id,
        processed=result.processed_count,
        total=result.total_fetched,
    )


@router.get("/{project_id}/commits", response_model=List[schemas.CommitOut])
def list_commits(project_id: str, db: Session = Depends(get_db)):
    if not service.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return commit_service.list_project_commits(db, project_id)


@router.get("/{project_id}/stats", response_model=schemas.ProjectStats)
def project_stats(project_id: str, db: Session = Depends(get_db)):
    if not service.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return schemas.ProjectStats(**commit_service.get_project_stats(db, project_id))
