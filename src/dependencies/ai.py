"""FastAPI dependencies for AI description generation.

Collaborators (skill catalog, project resolver, provider configuration) are
built once per process from settings and can be replaced in tests through
`app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends, Request

from core.config import Settings, get_settings
from services.ai.audit import AuditLog, FileAuditLog, JsonLinesAuditLog, NullAuditLog
from services.ai.generation import DescriptionGenerationService, GenerationOptions
from services.ai.models import ProviderConfig
from services.ai.projects import InMemoryProjectResolver, ProjectResolver
from services.ai.providers import resolve_provider_config
from services.ai.skills import InMemorySkillCatalog, SkillCatalog


LOGGER = logging.getLogger(__name__)

AppSettings = Annotated[Settings, Depends(get_settings)]


@lru_cache
def _load_skill_catalog(path: str) -> InMemorySkillCatalog:
    if not path:
        return InMemorySkillCatalog()
    return InMemorySkillCatalog.from_file(path)


@lru_cache
def _load_project_resolver(path: str) -> InMemoryProjectResolver:
    if not path:
        LOGGER.info("PROJECTS_FILE not set; projects resolve without briefing")
        return InMemoryProjectResolver(strict=False)
    return InMemoryProjectResolver.from_file(path)


def get_skill_catalog(settings: AppSettings) -> SkillCatalog:
    return _load_skill_catalog(settings.SKILLS_FILE)


def get_project_resolver(settings: AppSettings) -> ProjectResolver:
    return _load_project_resolver(settings.PROJECTS_FILE)


def get_provider_config(settings: AppSettings) -> ProviderConfig | None:
    return resolve_provider_config(settings)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared outbound client created in the application lifespan."""
    return request.app.state.http_client


def get_debug_log(settings: AppSettings) -> AuditLog:
    if settings.DEBUG_AI_LOG:
        return FileAuditLog(settings.AI_DEBUG_LOG_FILE)
    return NullAuditLog()


def get_rejected_prompts_log(settings: AppSettings) -> AuditLog:
    if settings.LOG_REJECTED_PROMPTS:
        return JsonLinesAuditLog(settings.REJECTED_PROMPTS_LOG_FILE)
    return NullAuditLog()


def get_generation_service(
    settings: AppSettings,
    skills: Annotated[SkillCatalog, Depends(get_skill_catalog)],
    provider_config: Annotated[ProviderConfig | None, Depends(get_provider_config)],
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    debug_log: Annotated[AuditLog, Depends(get_debug_log)],
    rejected_log: Annotated[AuditLog, Depends(get_rejected_prompts_log)],
) -> DescriptionGenerationService:
    return DescriptionGenerationService(
        skills=skills,
        provider_config=provider_config,
        http_client=http_client,
        options=GenerationOptions(
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=settings.AI_TEMPERATURE,
            timeout_seconds=settings.AI_STREAM_TIMEOUT_SECONDS,
        ),
        debug_log=debug_log,
        rejected_log=rejected_log,
    )


SkillCatalogDep = Annotated[SkillCatalog, Depends(get_skill_catalog)]
ProjectResolverDep = Annotated[ProjectResolver, Depends(get_project_resolver)]
GenerationServiceDep = Annotated[
    DescriptionGenerationService, Depends(get_generation_service)
]
