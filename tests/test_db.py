# FILE: tests/test_db.py
"""
Tests for neurohub/db.py
Database core functionality - metadata, sessions, conflict-ignoring inserts.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker


class TestDatabaseConnection:
    """Test database connection and session creation."""

    def test_base_metadata_exists(self):
        """Test that Base metadata is properly configured."""
        from neurohub.db import Base
        assert Base is not None
        assert hasattr(Base, 'metadata')

    def test_import_models_registers_all_tables(self):
        """Test every pipeline table is known to the metadata."""
        from neurohub.db import Base, import_models

        import_models()
        assert {"projects", "commits", "source_embeddings"} <= set(Base.metadata.tables)

    def test_in_memory_database_creation(self, db_engine):
        """Test tables are created on an in-memory SQLite database."""
        tables = set(inspect(db_engine).get_table_names())
        assert {"projects", "commits", "source_embeddings"} <= tables

        session = sessionmaker(bind=db_engine)()
        session.execute(text("SELECT 1"))
        session.close()

    def test_get_db_closes_session(self):
        """Test get_db yields a session and closes it afterwards."""
        from unittest.mock import patch, MagicMock
        from neurohub import db as db_module

        fake_session = MagicMock()
        with patch.object(db_module, "SessionLocal", return_value=fake_session):
            gen = db_module.get_db()
            assert next(gen) is fake_session
            with pytest.raises(StopIteration):
                next(gen)
        fake_session.close.assert_called_once()


class TestUniqueConstraints:
    """Test the (project, key) uniqueness invariants."""

    def test_duplicate_commit_hash_rejected(self, db_session, project):
        from neurohub.commits.models import Commit

        db_session.add(Commit(project_id=project.id, commit_hash="abc", commit_message="one"))
        db_session.commit()
        db_session.add(Commit(project_id=project.id, commit_hash="abc", commit_message="two"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_duplicate_file_path_rejected(self, db_session, project):
        from neurohub.embeddings.models import SourceEmbedding

        db_session.add(SourceEmbedding(project_id=project.id, file_path="a.py", summary="s"))
        db_session.commit()
        db_session.add(SourceEmbedding(project_id=project.id, file_path="a.py", summary="t"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestInsertIgnore:
    """Test conflict-ignoring inserts."""

    def test_first_insert_writes_row(self, db_session, project):
        from neurohub.db import insert_ignore
        from neurohub.commits.models import Commit

        values = {"project_id": project.id, "commit_hash": "abc", "commit_message": "m"}
        assert insert_ignore(db_session, Commit, values, ("project_id", "commit_hash")) is True
        db_session.commit()
        assert db_session.query(Commit).count() == 1

    def test_conflicting_insert_is_skipped(self, db_session, project):
        from neurohub.db import insert_ignore
        from neurohub.commits.models import Commit

        values = {"project_id": project.id, "commit_hash": "abc", "commit_message": "m"}
        insert_ignore(db_session, Commit, values, ("project_id", "commit_hash"))
        db_session.commit()

        again = dict(values, commit_message="other")
        assert insert_ignore(db_session, Commit, again, ("project_id", "commit_hash")) is False
        db_session.commit()

        rows = db_session.query(Commit).all()
        assert len(rows) == 1
        assert rows[0].commit_message == "m"

    def test_same_hash_in_other_project_allowed(self, db_session, project):
        from neurohub.db import insert_ignore
        from neurohub.commits.models import Commit
        from neurohub.projects.models import Project

        other = Project(name="Other", github_url="https://github.com/acme/other")
        db_session.add(other)
        db_session.commit()

        for pid in (project.id, other.id):
            values = {"project_id": pid, "commit_hash": "abc", "commit_message": "m"}
            assert insert_ignore(db_session, Commit, values, ("project_id", "commit_hash")) is True
        db_session.commit()
        assert db_session.query(Commit).count() == 2
