# FILE: tests/conftest.py
"""
Pytest configuration for NeuroHub test suite.

Configures:
- pytest-asyncio for async test support
- in-memory SQLite sessions built from neurohub.db.Base
- zero retry/batch delays so pipeline tests run instantly
"""
import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def db_engine():
    """In-memory database shared by every connection (TestClient runs in another thread)."""
    from neurohub.db import Base, import_models

    import_models()
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def fast_pipeline(monkeypatch):
    """No sleeping between retries or batches; fresh summary cache per test."""
    from neurohub.rag import config
    from neurohub.rag.summarizer import get_summary_cache

    monkeypatch.setattr(config, "RETRY_BASE_DELAY", 0.0)
    monkeypatch.setattr(config, "BATCH_DELAY_SECONDS", 0.0)
    get_summary_cache().clear()
    yield
    get_summary_cache().clear()


@pytest.fixture
def fast_policy():
    from neurohub.llm.caller import RetryPolicy
    return RetryPolicy(max_retries=3, base_delay=0.0, timeout_seconds=5.0)


@pytest.fixture
def project(db_session):
    """A live project linked to acme/widgets."""
    from neurohub.projects.models import Project

    p = Project(name="Widgets", github_url="https://github.com/acme/widgets")
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p
