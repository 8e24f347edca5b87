# backend/routes/public.py
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from services import catalog
from services.shuffle import normalize_seed
import schemas.catalog as catalog_schemas

# Storefront endpoints: no authentication, no cost/supplier/location data
router = APIRouter(
    prefix="/public",
    tags=["Storefront"]
)


# Retrieve unique product categories
@router.get("/categories", response_model=catalog_schemas.CategoryList)
def get_public_categories(db: Session = Depends(get_db)):
    return {"categories": catalog.public_categories(db)}


@router.get("/products", response_model=catalog_schemas.CatalogPage)
def list_products_for_storefront(
    # Search and filter parameters
    search: Optional[str] = Query(None, description="Search in name, code, description or category"),
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.CATALOG_DEFAULT_PAGE_SIZE, ge=1, le=settings.CATALOG_MAX_PAGE_SIZE),
    shuffle: bool = Query(False),
    shuffle_seed: Optional[str] = Query(None, description="Reuse the returned seed to page through the same order"),
    db: Session = Depends(get_db),
):
    seed = normalize_seed(shuffle_seed)
    filters = catalog.CatalogFilters(
        q=search, category=category, min_price=min_price, max_price=max_price,
        page=page, per_page=per_page,
        # A seed on its own asks for the shuffled order
        shuffle=shuffle or seed is not None, seed=seed,
    )
    return catalog.assemble_catalog(db, filters)


@router.get("/products/featured", response_model=catalog_schemas.FeaturedList)
def get_featured_products(db: Session = Depends(get_db)):
    return {"products": catalog.featured_products(db)}


@router.get("/products/{product_id}", response_model=catalog_schemas.ProductDetailOut)
def get_product_detail(
    product_id: int,
    variant_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return catalog.product_detail(db, product_id, variant_id)
