"""
Database engine and session management.
Default: SQLite at data/agentify.db (DATABASE_URL overrides).
"""
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from agentify.core.config import get_compiler_config


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite files get their directory created."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        path = database_url.split("sqlite:///", 1)[-1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,  # No SQL logging (config payloads)
    )


engine = create_db_engine(get_compiler_config().database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind: Engine = engine) -> None:
    """Initialize database tables."""
    from agentify.db.models import AgentConfig, CompilationRequest  # noqa: F401
    Base.metadata.create_all(bind=bind)
