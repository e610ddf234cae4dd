"""AI card-description generation and skill listing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body
from fastapi.responses import StreamingResponse

from core.exceptions import InvalidRequest
from dependencies.ai import GenerationServiceDep, ProjectResolverDep, SkillCatalogDep
from schemas.ai import GenerateDescriptionRequest, SkillSummary
from schemas.api import ApiResponse
from services.ai.generation import sse_response_headers, to_generation_request
from services.ai.skills import SKILL_SCOPES


__all__ = [
    "generate_description",
    "list_skills",
]


logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai"])


@router.post(
    "/projects/{project_id}/ai/generate-description",
    summary="Stream an AI-generated card description via Server-Sent Events",
)
async def generate_description(
    project_id: str,
    projects: ProjectResolverDep,
    service: GenerationServiceDep,
    body: GenerateDescriptionRequest | None = Body(default=None),
) -> StreamingResponse:
    """Generate or improve a card description.

    Validation, skill lookup and the upstream handshake complete before the
    response starts, so those failures return ordinary JSON errors
    (400/404/501/502). After that the body is a sequence of frames:

      data: {"text": "<fragment>"}
      data: {"error": "<message>"}     (at most one, then the stream ends)
      data: [DONE]                     (last frame on success)
    """
    project = projects.resolve(project_id)
    request = to_generation_request(body, project)
    stream = await service.start(request)
    logger.debug(
        "Streaming AI description for project %s (%s)",
        project_id,
        "skill" if request.skill_id else request.effective_mode,
    )
    return StreamingResponse(
        stream.events(),
        media_type="text/event-stream",
        headers=sse_response_headers(),
    )


@router.get("/skills", response_model=ApiResponse[list[SkillSummary]])
def list_skills(
    skills: SkillCatalogDep, scope: str | None = None
) -> ApiResponse[list[SkillSummary]]:
    """List instruction templates ordered by position; all scopes unless given."""
    if scope is not None and scope not in SKILL_SCOPES:
        raise InvalidRequest('Scope must be "card" or "board"')
    return ApiResponse(
        data=[SkillSummary.model_validate(s) for s in skills.list(scope)],
        message="Skills retrieved successfully",
    )
