"""
Download endpoints for build artifacts.

GET /download/artifact/{job_id}   - remote artifact, proxied from GitHub
GET /download/plugin/{filename}   - locally built native plugin
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, Response

from agentify.api.deps import get_config, get_resolver, require_remote
from agentify.core.artifact_resolver import (
    ArtifactResolver,
    resolve_local_plugin,
    validate_job_id,
)
from agentify.core.config import CompilerConfig
from agentify.core.metrics import metrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/download", tags=["download"])


@router.get("/artifact/{job_id}")
async def download_artifact(
    job_id: str,
    resolver: Optional[ArtifactResolver] = Depends(get_resolver),
) -> Response:
    """
    Download the artifact of a completed GitHub Actions job as a ZIP file.
    """
    validate_job_id(job_id)
    artifact = await require_remote(resolver).resolve(job_id)
    return Response(
        content=artifact.content,
        media_type=artifact.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{artifact.filename}"',
            "Content-Length": str(artifact.size),
            "X-Artifact-SHA256": artifact.sha256,
        },
    )


@router.get("/plugin/{filename}")
async def download_plugin(
    filename: str,
    config: CompilerConfig = Depends(get_config),
) -> FileResponse:
    """Download a locally compiled plugin (.so, .dll or .dylib)."""
    plugin = resolve_local_plugin(filename, config.plugins_dir)
    metrics.inc("artifact_download_total")
    logger.info(f"plugin_download filename={plugin.filename}")
    return FileResponse(
        path=plugin.path,
        media_type=plugin.content_type,
        filename=plugin.filename,
        headers={"Cache-Control": "no-cache"},
    )
