"""Add-on and experience catalog Pydantic schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field

from .common import Money


class CreateAddonRequest(BaseModel):
    """Request schema for creating an add-on."""

    name: str = Field(..., min_length=1, max_length=255, description="Add-on name")
    description: str | None = Field(None, max_length=2000, description="Add-on description")
    price: int = Field(..., ge=0, description="Unit price in minor units")
    category: str = Field("general", min_length=1, max_length=50, description="Catalog category")
    is_active: bool = Field(True, description="Whether the add-on can be selected")


class UpdateAddonRequest(BaseModel):
    """Request schema for editing an add-on. Existing bookings keep their frozen price."""

    addon_id: str = Field(..., description="Add-on to update")
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    price: int | None = Field(None, ge=0)
    category: str | None = Field(None, min_length=1, max_length=50)
    is_active: bool | None = None


class ListAddonsRequest(BaseModel):
    """Request schema for listing add-ons."""

    category: str | None = Field(None, description="Filter by category")
    include_inactive: bool = Field(False, description="Include retired add-ons (admins only)")


class Addon(BaseModel):
    """Add-on response schema."""

    id: str
    name: str
    description: str | None = None
    price: Money
    category: str
    is_active: bool

    class Config:
        from_attributes = True


class ListAddonsResponse(BaseModel):
    items: list[Addon]


class CreateExperienceRequest(BaseModel):
    """Request schema for creating an experience package."""

    name: str = Field(..., min_length=1, max_length=255, description="Experience name")
    description: str | None = Field(None, max_length=2000, description="Experience description")
    location: str | None = Field(None, max_length=64, description="Where the experience departs from")
    base_price: int = Field(..., ge=0, description="Base price in minor units")
    duration_hours: Decimal = Field(Decimal("1.0"), gt=0, le=24, description="Flight duration in hours")
    max_passengers: int = Field(4, ge=1, le=20, description="Seats available")
    is_active: bool = Field(True, description="Whether the experience can be booked")


class ListExperiencesRequest(BaseModel):
    include_inactive: bool = Field(False, description="Include retired experiences (admins only)")


class Experience(BaseModel):
    """Experience response schema."""

    id: str
    name: str
    description: str | None = None
    location: str | None = None
    base_price: Money
    duration_hours: float
    max_passengers: int
    is_active: bool

    class Config:
        from_attributes = True


class ListExperiencesResponse(BaseModel):
    items: list[Experience]
