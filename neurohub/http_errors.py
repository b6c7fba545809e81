"""
Pipeline exception -> HTTPException mapping shared by the routers.
"""
from fastapi import HTTPException

from neurohub.errors import (
    ConfigurationError,
    EmbeddingError,
    NeuroHubError,
    PersistenceError,
    ProjectNotFoundError,
)
from neurohub.llm.caller import ExternalServiceError


def status_for(exc: NeuroHubError) -> int:
    if isinstance(exc, ProjectNotFoundError):
        return 404
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, EmbeddingError):
        return 422
    if isinstance(exc, ExternalServiceError):
        return 502
    if isinstance(exc, PersistenceError):
        return 500
    return 500


def to_http_exception(exc: NeuroHubError) -> HTTPException:
    return HTTPException(status_code=status_for(exc), detail=str(exc))
