# backend/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List

from models.product import ProductStatus


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shared base attributes for product entities
class ProductBase(ORMBase):
    name: str
    code: str
    description: Optional[str] = None
    category: Optional[str] = None
    supplier: Optional[str] = None
    location: Optional[str] = None
    cost: Optional[float] = Field(default=None, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    min_stock: Optional[int] = Field(default=None, ge=0)
    status: Optional[ProductStatus] = None
    show_in_storefront: Optional[bool] = None
    image_url: Optional[str] = None


# Schema for creating a new product
class ProductCreate(ProductBase):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    sale_price: float = Field(ge=0)
    # Opening stock; recorded in the ledger as an Entry
    stock_quantity: int = Field(default=0, ge=0)


# Schema for partial product updates
class ProductEditRequest(ORMBase):
    """Schema for PATCH requests - all fields optional. Stock goes through /stock."""
    name: Optional[str] = Field(None, min_length=1)
    code: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    supplier: Optional[str] = None
    location: Optional[str] = None
    cost: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    min_stock: Optional[int] = Field(None, ge=0)
    status: Optional[ProductStatus] = None
    show_in_storefront: Optional[bool] = None
    image_url: Optional[str] = None


# Full back-office representation
class ProductOut(ProductBase):
    id: int
    stock_quantity: int
    # Sellable units: raw counter, or the bottleneck of the components for a set
    available: Optional[int] = None
    is_composite: bool
    is_variant_parent: bool
    created_at: Optional[datetime] = None


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int


class SetReference(ORMBase):
    set_id: int
    code: str
    name: str
    quantity: int
