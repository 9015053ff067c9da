"""Catalog router for add-ons and experience packages."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminIdentity, Identity, RequiredIdentity
from ..core.exceptions import ProblemDetailsException
from ..schemas.catalog import (
    Addon,
    CreateAddonRequest,
    CreateExperienceRequest,
    Experience,
    ListAddonsRequest,
    ListAddonsResponse,
    ListExperiencesRequest,
    ListExperiencesResponse,
    UpdateAddonRequest,
)
from ..schemas.common import Money
from ..services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/catalog", tags=["catalog"])

DB_DEPENDENCY = Depends(get_db)


def _convert_addon_to_schema(addon_model) -> Addon:
    return Addon(
        id=str(addon_model.id),
        name=addon_model.name,
        description=addon_model.description,
        price=Money.of(addon_model.price),
        category=addon_model.category,
        is_active=addon_model.is_active,
    )


def _convert_experience_to_schema(experience_model) -> Experience:
    return Experience(
        id=str(experience_model.id),
        name=experience_model.name,
        description=experience_model.description,
        location=experience_model.location,
        base_price=Money.of(experience_model.base_price),
        duration_hours=float(experience_model.duration_hours),
        max_passengers=experience_model.max_passengers,
        is_active=experience_model.is_active,
    )


def _server_error(action: str, error: Exception) -> HTTPException:
    logger.error(
        f"Unexpected error in {action}",
        extra={"error": str(error)},
        exc_info=True
    )
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/addon/list", response_model=ListAddonsResponse)
async def list_addons(
    request: ListAddonsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """List selectable add-ons. Retired ones are listed for admins on request."""
    catalog_service = CatalogService(db)

    try:
        addons = await catalog_service.list_addons(
            category=request.category,
            include_inactive=request.include_inactive and identity.is_admin,
        )
        response_data = ListAddonsResponse(items=[_convert_addon_to_schema(a) for a in addons])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _server_error("add-on listing", e) from e


@router.post("/addon/create", response_model=Addon, status_code=201)
async def create_addon(
    request: CreateAddonRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = AdminIdentity
) -> JSONResponse:
    """Create a catalog add-on (admin only)."""
    catalog_service = CatalogService(db)

    try:
        addon = await catalog_service.create_addon(request)
        return JSONResponse(status_code=201, content=_convert_addon_to_schema(addon).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _server_error("add-on creation", e) from e


@router.post("/addon/update", response_model=Addon)
async def update_addon(
    request: UpdateAddonRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = AdminIdentity
) -> JSONResponse:
    """
    Edit a catalog add-on (admin only).

    Bookings that already selected the add-on keep their frozen price.
    """
    catalog_service = CatalogService(db)

    try:
        addon = await catalog_service.update_addon(request)
        return JSONResponse(status_code=200, content=_convert_addon_to_schema(addon).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _server_error("add-on update", e) from e


@router.post("/experience/list", response_model=ListExperiencesResponse)
async def list_experiences(
    request: ListExperiencesRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """List bookable experience packages."""
    catalog_service = CatalogService(db)

    try:
        experiences = await catalog_service.list_experiences(
            include_inactive=request.include_inactive and identity.is_admin,
        )
        response_data = ListExperiencesResponse(items=[_convert_experience_to_schema(e) for e in experiences])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _server_error("experience listing", e) from e


@router.post("/experience/create", response_model=Experience, status_code=201)
async def create_experience(
    request: CreateExperienceRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = AdminIdentity
) -> JSONResponse:
    """Create an experience package (admin only)."""
    catalog_service = CatalogService(db)

    try:
        experience = await catalog_service.create_experience(request)
        return JSONResponse(
            status_code=201,
            content=_convert_experience_to_schema(experience).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _server_error("experience creation", e) from e
