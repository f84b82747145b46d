from pydantic import BaseModel, Field, ConfigDict, field_serializer
from datetime import datetime
from decimal import Decimal
from typing import Optional


class ProductBase(BaseModel):
    """Base schema for Product with the caller-settable attributes."""
    name: str = Field(..., min_length=2, max_length=100, description="Product name")
    description: Optional[str] = Field(None, max_length=500, description="Product description")
    price: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        description="Product price (positive, at most 8 integer and 2 decimal digits)"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z\s]+$",
        description="Product category (letters and spaces only)"
    )
    stock: int = Field(..., ge=0, description="Available stock (must be non-negative)")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    pass


class ProductUpdate(ProductBase):
    """
    Schema for updating an existing product.

    Updates replace every mutable field; `active` and the timestamps
    are never caller-settable.
    """
    pass


class ProductResponse(ProductBase):
    """Schema for product response including all fields."""
    id: int
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("price", when_used="json")
    def serialize_price(self, price: Decimal) -> float:
        return float(price)


class PagedResponse(BaseModel):
    """Schema for one page of products plus navigation metadata."""
    content: list[ProductResponse]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool
    has_next: bool
    has_previous: bool
