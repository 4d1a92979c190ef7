"""
SQLAlchemy models for user-owned agent configs and build requests.

JSON payloads are stored as text; timestamps as ISO-8601 UTC strings.
"""
from sqlalchemy import Column, Index, Text

from agentify.db.database import Base


class AgentConfig(Base):
    """Saved agent configuration (one per user)."""
    __tablename__ = "agent_configs"

    id = Column(Text, primary_key=True, index=True)
    user_id = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    config_json = Column(Text, nullable=False)  # Full UI config record
    build_target = Column(Text, nullable=False, default="wasm")  # wasm, go
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)


class CompilationRequest(Base):
    """A build request queued from the stream endpoint."""
    __tablename__ = "compilation_requests"

    id = Column(Text, primary_key=True, index=True)
    user_id = Column(Text, nullable=False, index=True)
    config_json = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)  # pending, in_progress, completed, failed
    job_id = Column(Text, nullable=True, index=True)
    compilation_method = Column(Text, nullable=True)  # local, github-actions
    download_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    completed_at = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_compilation_requests_user_created", "user_id", "created_at"),
    )
