"""Репозиторий для работы с тенантами."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.tenant import Tenant


class TenantRepository:
    """Репозиторий тенантов (white-label организаций)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, tenant_id: int) -> Tenant | None:
        """Получить тенанта по ID."""
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_domain(self, domain: str) -> Tenant | None:
        """Получить активного тенанта по домену (без порта и регистра)."""
        host = domain.split(":", 1)[0].strip().lower()
        stmt = select(Tenant).where(Tenant.domain == host, Tenant.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        slug: str,
        name: str,
        domain: str | None = None,
        allowed_industries: list[str] | None = None,
        allowed_languages: list[str] | None = None,
        default_language: str = "en",
    ) -> Tenant:
        """Создать тенанта."""
        tenant = Tenant(
            slug=slug,
            name=name,
            domain=domain.lower() if domain else None,
            allowed_industries=allowed_industries,
            allowed_languages=allowed_languages,
            default_language=default_language,
        )
        self._session.add(tenant)
        await self._session.commit()
        await self._session.refresh(tenant)
        return tenant
