"""
BuildRequestStore - persistence for user-owned configs and build requests.

The compile pipeline never reads from here; it backs the stream endpoint's
"has a saved config" check and queued start_process_configuration requests.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agentify.db.database import SessionLocal
from agentify.db.models import AgentConfig as AgentConfigModel
from agentify.db.models import CompilationRequest as CompilationRequestModel
from agentify.schemas.compile import JobStatus

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredRequest:
    """A queued compilation request."""
    id: str
    user_id: str
    config: dict[str, Any]
    status: str
    created_at: str
    job_id: Optional[str] = None


def _model_to_request(model: CompilationRequestModel) -> StoredRequest:
    return StoredRequest(
        id=model.id,
        user_id=model.user_id,
        config=json.loads(model.config_json) if model.config_json else {},
        status=model.status,
        created_at=model.created_at,
        job_id=model.job_id,
    )


class BuildRequestStore:
    """SQLAlchemy-backed store; one session per call."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def get_config_for_user(self, user_id: str) -> Optional[dict[str, Any]]:
        """The user's saved agent config, or None."""
        db = self._session_factory()
        try:
            model = db.query(AgentConfigModel).filter(AgentConfigModel.user_id == user_id).first()
            if model is None:
                return None
            return json.loads(model.config_json)
        finally:
            db.close()

    def save_config(self, user_id: str, config: dict[str, Any]) -> None:
        """Insert or replace the user's agent config."""
        db = self._session_factory()
        try:
            now = _now()
            model = db.query(AgentConfigModel).filter(AgentConfigModel.user_id == user_id).first()
            if model is None:
                model = AgentConfigModel(id=str(uuid.uuid4()), user_id=user_id, created_at=now)
                db.add(model)
            model.name = str(config.get("name") or config.get("agent_name") or "agent")
            model.config_json = json.dumps(config)
            model.build_target = str(config.get("buildTarget") or config.get("build_target") or "wasm")
            model.updated_at = now
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def store_request(self, user_id: str, config: dict[str, Any]) -> StoredRequest:
        """Queue a compilation request with status pending."""
        db = self._session_factory()
        try:
            now = _now()
            model = CompilationRequestModel(
                id=str(uuid.uuid4()),
                user_id=user_id,
                config_json=json.dumps(config or {}),
                status=JobStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            db.add(model)
            db.commit()
            db.refresh(model)
            logger.info(f"compilation_request_stored request_id={model.id}")
            return _model_to_request(model)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def get_request(self, request_id: str) -> Optional[StoredRequest]:
        db = self._session_factory()
        try:
            model = db.query(CompilationRequestModel).filter(CompilationRequestModel.id == request_id).first()
            return _model_to_request(model) if model else None
        finally:
            db.close()
