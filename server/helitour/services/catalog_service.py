"""Catalog service for add-ons and experience packages."""

import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError
from ..models.addon import Addon
from ..models.experience import Experience
from ..schemas.catalog import CreateAddonRequest, CreateExperienceRequest, UpdateAddonRequest
from .pricing import CatalogPrice

logger = logging.getLogger(__name__)


def _parse_ids(values: Iterable[str]) -> list[UUID]:
    ids = []
    for value in values:
        try:
            ids.append(UUID(str(value)))
        except ValueError:
            continue
    return ids


class CatalogService:
    """Service for catalog operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def price_lookup(self, addon_ids: Iterable[str]) -> dict[str, CatalogPrice]:
        """
        Snapshot the current price and availability of the given add-ons.

        IDs that are malformed or unknown are simply absent from the result.
        """
        ids = _parse_ids(addon_ids)
        if not ids:
            return {}

        result = await self.db.execute(select(Addon).where(Addon.id.in_(ids)))
        return {
            str(addon.id): CatalogPrice(addon_id=str(addon.id), price=addon.price, is_active=addon.is_active)
            for addon in result.scalars()
        }

    async def list_addons(self, category: Optional[str] = None, include_inactive: bool = False) -> list[Addon]:
        stmt = select(Addon)
        if category:
            stmt = stmt.where(Addon.category == category)
        if not include_inactive:
            stmt = stmt.where(Addon.is_active.is_(True))
        stmt = stmt.order_by(Addon.category, Addon.name)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def create_addon(self, request: CreateAddonRequest) -> Addon:
        addon = Addon(
            name=request.name,
            description=request.description,
            price=request.price,
            category=request.category,
            is_active=request.is_active,
        )
        self.db.add(addon)
        await self.db.commit()
        await self.db.refresh(addon)

        logger.info(
            "Add-on created successfully",
            extra={"addon_id": str(addon.id), "name": addon.name, "price": addon.price}
        )

        return addon

    async def update_addon(self, request: UpdateAddonRequest) -> Addon:
        """
        Edit a catalog add-on.

        Bookings that already selected it keep their frozen unit price.

        Raises:
            NotFoundError: If the add-on does not exist
        """
        addon = await self.get_addon_by_id_or_raise(request.addon_id)

        changes = request.model_dump(exclude_unset=True, exclude={"addon_id"})
        for name, value in changes.items():
            if value is not None:
                setattr(addon, name, value)

        await self.db.commit()
        await self.db.refresh(addon)

        logger.info(
            "Add-on updated",
            extra={"addon_id": str(addon.id), "changed_fields": sorted(changes)}
        )

        return addon

    async def get_addon_by_id_or_raise(self, addon_id: str) -> Addon:
        ids = _parse_ids([addon_id])
        addon = None
        if ids:
            result = await self.db.execute(select(Addon).where(Addon.id == ids[0]))
            addon = result.scalar_one_or_none()
        if not addon:
            raise NotFoundError(resource_type="addon", resource_id=addon_id)
        return addon

    async def list_experiences(self, include_inactive: bool = False) -> list[Experience]:
        stmt = select(Experience)
        if not include_inactive:
            stmt = stmt.where(Experience.is_active.is_(True))
        stmt = stmt.order_by(Experience.name)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_experience_by_id(self, experience_id: UUID) -> Experience | None:
        result = await self.db.execute(select(Experience).where(Experience.id == experience_id))
        return result.scalar_one_or_none()

    async def create_experience(self, request: CreateExperienceRequest) -> Experience:
        experience = Experience(
            name=request.name,
            description=request.description,
            location=request.location,
            base_price=request.base_price,
            duration_hours=request.duration_hours,
            max_passengers=request.max_passengers,
            is_active=request.is_active,
        )
        self.db.add(experience)
        await self.db.commit()
        await self.db.refresh(experience)

        logger.info(
            "Experience created successfully",
            extra={"experience_id": str(experience.id), "name": experience.name, "base_price": experience.base_price}
        )

        return experience
