# FILE: neurohub/db.py
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Database path: ./data/neurohub.db relative to project root
# Override with NEUROHUB_DATABASE_URL env var (e.g. a postgresql:// URL)
DATABASE_URL = os.getenv("NEUROHUB_DATABASE_URL", "sqlite:///./data/neurohub.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args,  # Required for SQLite
    echo=False,  # Set True to log SQL statements for debugging
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    """Import every model module so Base.metadata knows about all tables."""
    from neurohub.projects import models as project_models  # noqa: F401
    from neurohub.commits import models as commit_models  # noqa: F401
    from neurohub.embeddings import models as embedding_models  # noqa: F401


def init_db():
    """Create all tables. Call once at startup."""
    import_models()
    Base.metadata.create_all(bind=engine)


def insert_ignore(db, model, values: dict, conflict_columns) -> bool:
    """
    INSERT one row unless it collides with a unique constraint.

    Returns True when the row was written, False when it already existed.
    Uses ON CONFLICT DO NOTHING where the dialect supports it, a savepoint
    elsewhere. Does not commit.
    """
    from sqlalchemy import insert
    from sqlalchemy.exc import IntegrityError

    dialect = db.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        stmt = dialect_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(conflict_columns)
        )
        result = db.execute(stmt)
        return (result.rowcount or 0) > 0

    try:
        with db.begin_nested():
            db.execute(insert(model).values(**values))
        return True
    except IntegrityError:
        return False
