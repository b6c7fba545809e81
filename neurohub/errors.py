"""
Error taxonomy for the ingestion and retrieval pipeline.

- ConfigurationError: missing/invalid repository URL or project reference
  (ProjectNotFoundError for an unknown or deleted project).
  Never retried, surfaced to the caller immediately.
- EmbeddingError: a vector was required (question embedding) but came back
  empty or with the wrong dimensionality. Fatal for that operation only.
- PersistenceError: a read or write against the store failed.

ExternalServiceError lives in neurohub.llm.caller next to the retry logic
that interprets its `transient` flag.
"""


class NeuroHubError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(NeuroHubError):
    """Project or repository configuration is missing or invalid."""


class EmbeddingError(NeuroHubError):
    """Embedding vector missing or of unexpected dimensionality."""

    def __init__(self, message: str, expected: int = 0, actual: int = 0):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class PersistenceError(NeuroHubError):
    """Database read/write failed."""


class ProjectNotFoundError(ConfigurationError):
    """No live project with the given id."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id
