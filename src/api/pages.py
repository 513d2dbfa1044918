"""API лендингов.

- POST /api/pages/generate — страница из кэша или новая генерация
- POST /api/pages/mass — массовая генерация страниц тенанта (Enterprise)
- GET /api/pages — ключи страниц в кэше (?pattern=glob)
- GET /api/pages/{key} — содержимое страницы из кэша

Отказ по лимитам возвращается как 402 с причиной и признаком
upgrade_required. Отказ из-за сбоя проверки (degraded) — 503:
клиенту стоит повторить запрос, а не менять тариф.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from src.core.exceptions import (
    AIServiceError,
    GenerationError,
    UsageLimitExceededError,
)
from src.core.registry import ServiceRegistry
from src.services.page_service import PageRequest, PageService
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/pages", tags=["pages"])


class GeneratePageBody(BaseModel):
    """Тело запроса генерации страницы."""

    industry: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1, max_length=200)
    business_type: str = Field(min_length=1, max_length=200)
    language: str = Field(default="en", min_length=2, max_length=10)
    user_id: int | None = None


class MassGenerationBody(BaseModel):
    """Тело запроса массовой генерации."""

    tenant_id: int
    user_id: int
    industry: str = Field(min_length=1, max_length=100)
    language: str = Field(default="en", min_length=2, max_length=10)
    cities: list[str] = Field(min_length=1, max_length=500)


async def _get_pages(request: Request) -> PageService:
    registry: ServiceRegistry | None = getattr(request.app.state, "registry", None)
    pages: PageService | None = None
    if registry is not None:
        pages = await registry.get("pages")
    if pages is None:
        raise HTTPException(status_code=503, detail="Page service unavailable")
    return pages


def _limit_exceeded(e: UsageLimitExceededError) -> HTTPException:
    validation = e.validation
    return HTTPException(
        status_code=503 if validation.degraded else 402,
        detail={
            "error": validation.reason,
            "upgrade_required": validation.upgrade_required,
            "remaining": validation.remaining,
        },
    )


def _generation_failed(e: GenerationError) -> HTTPException:
    return HTTPException(
        status_code=503 if e.is_retryable else 502,
        detail={"error": e.message, "retryable": e.is_retryable},
    )


@router.post("/generate")
async def generate_page(body: GeneratePageBody, request: Request) -> dict[str, Any]:
    """Отдать страницу из кэша или сгенерировать её."""
    pages = await _get_pages(request)
    page_request = PageRequest(
        industry=body.industry,
        language=body.language,
        location=body.location,
        business_type=body.business_type,
    )
    try:
        result = await pages.get_or_generate_page(page_request, body.user_id)
    except UsageLimitExceededError as e:
        raise _limit_exceeded(e) from e
    except GenerationError as e:
        raise _generation_failed(e) from e
    except AIServiceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return {"key": result.key, "cached": result.cached, **result.content.to_dict()}


@router.post("/mass")
async def generate_mass(body: MassGenerationBody, request: Request) -> dict[str, Any]:
    """Сгенерировать страницы для всех городов и типов бизнеса отрасли."""
    pages = await _get_pages(request)
    try:
        result = await pages.generate_mass(
            body.tenant_id, body.industry, body.language, body.cities, body.user_id
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except UsageLimitExceededError as e:
        raise _limit_exceeded(e) from e
    except AIServiceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return {
        "tenant_id": result.tenant_id,
        "industry": result.industry,
        "language": result.language,
        "generated": result.generated,
        "failed": result.failed,
        "keys": result.keys,
    }


@router.get("")
async def list_pages(request: Request, pattern: str = "*") -> list[str]:
    """Ключи страниц в кэше."""
    pages = await _get_pages(request)
    return await pages.list_pages(pattern)


@router.get("/{key}")
async def get_page(key: str, request: Request) -> dict[str, Any]:
    """Содержимое страницы из кэша."""
    pages = await _get_pages(request)
    content = await pages.get_page(key)
    if content is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return {"key": key, **content.to_dict()}
