"""
Router for debug artifacts (source maps and minified sources).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel

from crashtrack.models.base import APIBaseModel, UTCDatetime
from crashtrack.routers.dependencies import get_artifact_service
from crashtrack.services.artifact_service import ArtifactService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crash/projects", tags=["Crash Artifacts"])


# Request/Response Models


class ArtifactResponse(APIBaseModel):
    id: str
    project_id: str
    release: str
    dist: Optional[str] = None
    name: str
    artifact_type: str
    size_bytes: int
    sha256: str
    source_map_url: Optional[str] = None
    sources_content: bool
    uploaded_at: UTCDatetime
    uploaded_by: Optional[str] = None
    last_accessed_at: Optional[UTCDatetime] = None

    @classmethod
    def from_artifact(cls, artifact) -> "ArtifactResponse":
        response = cls.model_validate(artifact)
        response.dist = artifact.dist_or_none
        return response


class UploadedArtifact(ArtifactResponse):
    created: bool


class ArtifactError(BaseModel):
    filename: str
    error: str


class UploadArtifactsResponse(BaseModel):
    total: int
    uploaded_count: int
    existing_count: int
    error_count: int
    artifacts: List[UploadedArtifact]
    errors: List[ArtifactError]


# Endpoints


@router.post("/{project_id}/artifacts", response_model=UploadArtifactsResponse, status_code=201)
async def upload_artifacts(
    project_id: str,
    release: Optional[str] = Form(None, description="Release the files belong to"),
    dist: Optional[str] = Form(None, description="Optional distribution"),
    uploaded_by: Optional[str] = Form(None),
    files: List[UploadFile] = File(..., description="Source maps and minified sources"),
    service: ArtifactService = Depends(get_artifact_service),
):
    """
    Upload source maps and minified sources for a release.

    Files are stored under their upload filename. Identical content is
    deduplicated; rejected files are reported per file.
    """
    contents = []
    for upload in files:
        contents.append((upload.filename or "", await upload.read()))

    result = await service.upload(project_id, release, contents, dist=dist, uploaded_by=uploaded_by)
    return UploadArtifactsResponse(
        total=result.total,
        uploaded_count=result.uploaded_count,
        existing_count=result.existing_count,
        error_count=result.error_count,
        artifacts=[
            UploadedArtifact(
                **ArtifactResponse.from_artifact(stored.artifact).model_dump(),
                created=stored.created,
            )
            for stored in result.artifacts
        ],
        errors=[ArtifactError(filename=name, error=error) for name, error in result.errors],
    )


@router.get("/{project_id}/artifacts", response_model=List[ArtifactResponse])
async def list_artifacts(
    project_id: str,
    release: Optional[str] = Query(None, description="Only artifacts of this release"),
    limit: int = Query(100, ge=1, le=1000),
    service: ArtifactService = Depends(get_artifact_service),
):
    artifacts = await service.list_artifacts(project_id, release, limit)
    return [ArtifactResponse.from_artifact(artifact) for artifact in artifacts]


@router.get("/{project_id}/artifacts/{artifact_id}", response_model=ArtifactResponse)
async def get_artifact(
    project_id: str,
    artifact_id: str,
    service: ArtifactService = Depends(get_artifact_service),
):
    artifact = await service.get_artifact(project_id, artifact_id)
    return ArtifactResponse.from_artifact(artifact)


@router.delete("/{project_id}/artifacts/{artifact_id}", status_code=204)
async def delete_artifact(
    project_id: str,
    artifact_id: str,
    service: ArtifactService = Depends(get_artifact_service),
):
    await service.delete_artifact(project_id, artifact_id)
