# backend/schemas/catalog.py
from pydantic import BaseModel
from typing import List, Optional


class PublicImage(BaseModel):
    url: str
    display_order: int = 0
    is_primary: bool = False


# One storefront listing: a plain product or one variant of a variant parent.
# Cost, supplier, location and the exact stock figure are never part of it.
class VirtualProductOut(BaseModel):
    id: int
    variant_id: Optional[int] = None
    unique_key: str
    code: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: float
    currency: str
    in_stock: bool
    image_url: Optional[str] = None
    images: List[PublicImage] = []
    slug: str
    is_composite: bool = False
    is_variant: bool = False


class CatalogPage(BaseModel):
    products: List[VirtualProductOut]
    # total and total_pages are extrapolated from the expansion ratio
    # observed on the fetched rows; see total_is_estimate
    total: int
    page: int
    per_page: int
    total_pages: int
    has_more: bool
    total_is_estimate: bool
    seed: Optional[int] = None


class FeaturedList(BaseModel):
    products: List[VirtualProductOut]


class ComponentSummary(BaseModel):
    id: int
    name: str
    quantity: int
    image_url: Optional[str] = None


class VariantOption(BaseModel):
    variant_id: int
    name: str
    image_url: Optional[str] = None


class ProductDetailOut(VirtualProductOut):
    stock: int
    components: List[ComponentSummary] = []
    variants: List[VariantOption] = []


class CategoryList(BaseModel):
    categories: List[str]
