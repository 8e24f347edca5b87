# backend/services/catalog.py
"""Storefront catalog assembly.

One request runs Fetch -> Dedup -> Enrich -> FilterSets -> Expand ->
Shuffle -> Balance -> Paginate over the matching base rows. Rows are read
newest first in windows of CATALOG_MAX_BASE_ROWS, only as far as the requested
page needs. Variant parents expand into one listing per active variant, so
the number of listings is not the number of rows: while unread rows remain the
reported total is extrapolated and flagged with ``total_is_estimate``.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from exceptions import NotFoundError, UpstreamError
from models.image import ProductImage
from models.product import Product, ProductStatus
from models.variant import ProductVariant
from services import images as image_directory
from services import stock_resolver, variants as variant_group
from services.shuffle import balance_categories, random_seed, seeded_shuffle

logger = logging.getLogger(__name__)

FEATURED_LIMIT = 8


@dataclass
class CatalogFilters:
    q: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    page: int = 1
    per_page: int = 20
    shuffle: bool = False
    seed: Optional[int] = None


@dataclass
class VirtualProduct:
    id: int
    unique_key: str
    code: str
    name: str
    description: Optional[str]
    category: Optional[str]
    price: float
    currency: str
    in_stock: bool
    image_url: Optional[str]
    slug: str
    variant_id: Optional[int] = None
    images: List[dict] = field(default_factory=list)
    is_composite: bool = False
    is_variant: bool = False
    # Exact sellable units; only the detail view exposes it
    stock: int = 0

    def to_public(self) -> dict:
        return {
            "id": self.id, "variant_id": self.variant_id, "unique_key": self.unique_key,
            "code": self.code, "name": self.name, "description": self.description,
            "category": self.category, "price": self.price, "currency": self.currency,
            "in_stock": self.in_stock, "image_url": self.image_url, "images": self.images,
            "slug": self.slug, "is_composite": self.is_composite, "is_variant": self.is_variant,
        }


def make_slug(code: str, name: str) -> str:
    raw = f"{(code or '').lower()}-{(name or '').lower()}"
    raw = re.sub(r"\s+", "-", raw.strip())
    return re.sub(r"[^a-z0-9-]", "", raw)


def _visible(query):
    return query.filter(
        Product.status == ProductStatus.ACTIVE,
        Product.show_in_storefront.is_(True),
    )


def _base_query(db: Session, filters: CatalogFilters):
    query = _visible(db.query(Product))
    # Advisory for plain rows; sets are checked against their components later
    query = query.filter(or_(Product.is_composite.is_(True), Product.stock_quantity > 0))

    if filters.q:
        like = f"%{filters.q.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(like),
                Product.code.ilike(like),
                Product.description.ilike(like),
                Product.category.ilike(like),
            )
        )
    if filters.category:
        query = query.filter(func.lower(Product.category) == filters.category.strip().lower())
    if filters.min_price is not None:
        query = query.filter(Product.sale_price >= filters.min_price)
    if filters.max_price is not None:
        query = query.filter(Product.sale_price <= filters.max_price)
    return query


def _store_failure(db: Session, e: SQLAlchemyError) -> UpstreamError:
    db.rollback()
    logger.error("Catalog base fetch failed: %s", e)
    return UpstreamError(f"Data store error: {e}")


def _count(db: Session, query) -> int:
    try:
        return query.count()
    except SQLAlchemyError as e:
        raise _store_failure(db, e) from e


def _fetch(db: Session, query, offset: int, limit: int) -> List[Product]:
    try:
        return (
            query.order_by(Product.created_at.desc(), Product.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        raise _store_failure(db, e) from e


def _dedup(rows: List[Product], seen: set) -> List[Product]:
    unique = []
    for p in rows:
        if p.id in seen:
            continue
        seen.add(p.id)
        unique.append(p)
    return unique


def _load_images(db: Session, ids: List[int]) -> Dict[int, List[ProductImage]]:
    try:
        return image_directory.images_by_product(db, ids)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Image lookup failed for %s products, using declared image URLs: %s", len(ids), e)
        return {}


def _load_variants(db: Session, parent_ids: List[int]) -> Optional[Dict[int, List[ProductVariant]]]:
    """Active variants per parent, or None when the lookup itself failed."""
    try:
        return variant_group.active_variants_by_parent(db, parent_ids)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Variant lookup failed for %s parents, listing them as plain items: %s", len(parent_ids), e)
        return None


def _set_availability(db: Session, sets: List[Product]) -> Dict[int, int]:
    try:
        return stock_resolver.bulk_availability(db, sets)
    except SQLAlchemyError as e:
        db.rollback()
        # Unknown availability must not be sold: sets are left out of this page
        logger.warning("Availability lookup failed for %s sets: %s", len(sets), e)
        return {}


def _from_product(product: Product, images: List[ProductImage], stock: int) -> VirtualProduct:
    return VirtualProduct(
        id=product.id,
        unique_key=str(product.id),
        code=product.code,
        name=product.name,
        description=product.description,
        category=product.category,
        price=float(product.sale_price or 0),
        currency=product.currency or settings.DEFAULT_CURRENCY,
        in_stock=stock > 0,
        image_url=image_directory.primary_url(images, product.image_url),
        images=image_directory.as_public(images),
        slug=make_slug(product.code, product.name),
        is_composite=bool(product.is_composite),
        stock=stock,
    )


def _from_variant(product: Product, variant: ProductVariant, stock: int) -> VirtualProduct:
    # Name, description and image come from the variant alone
    images = [{"url": variant.image_url, "display_order": 0, "is_primary": True}] if variant.image_url else []
    return VirtualProduct(
        id=product.id,
        variant_id=variant.id,
        unique_key=f"{product.id}:{variant.id}",
        code=product.code,
        name=variant.name,
        description=variant.description,
        category=product.category,
        price=float(product.sale_price or 0),
        currency=product.currency or settings.DEFAULT_CURRENCY,
        in_stock=stock > 0,
        image_url=variant.image_url,
        images=images,
        slug=make_slug(product.code, variant.name),
        is_variant=True,
        stock=stock,
    )


def _expand(db: Session, rows: List[Product]) -> List[VirtualProduct]:
    ids = [p.id for p in rows]
    images = _load_images(db, ids)

    parent_ids = [p.id for p in rows if p.is_variant_parent]
    variants_by_parent = _load_variants(db, parent_ids) if parent_ids else {}

    sets = [p for p in rows if p.is_composite]
    availability = _set_availability(db, sets) if sets else {}

    items: List[VirtualProduct] = []
    for p in rows:
        if p.is_composite:
            stock = availability.get(p.id, 0)
            if stock <= 0:
                continue
        else:
            stock = p.stock_quantity or 0

        if p.is_variant_parent and variants_by_parent is not None:
            for v in variants_by_parent.get(p.id, []):
                items.append(_from_variant(p, v, stock))
            continue
        items.append(_from_product(p, images.get(p.id, []), stock))
    return items


def _order(window: List[VirtualProduct], seed: int, emitted: List[VirtualProduct]) -> List[VirtualProduct]:
    """Seeded shuffle and category balance of one window, continuing the runs at the end of `emitted`."""
    limit = settings.MAX_CONSECUTIVE_CATEGORY
    lead = emitted[-limit:] if limit > 0 else []
    return balance_categories(seeded_shuffle(window, seed), limit, lead=lead)


def assemble_catalog(db: Session, filters: CatalogFilters) -> dict:
    page = max(filters.page, 1)
    per_page = max(filters.per_page, 1)
    start = (page - 1) * per_page
    seed = None
    if filters.shuffle:
        seed = filters.seed if filters.seed is not None else random_seed()

    query = _base_query(db, filters)
    base_count = _count(db, query)
    window_size = max(settings.CATALOG_MAX_BASE_ROWS, 1)

    # Windows are ordered one by one with a per-window seed, so the listing
    # sequence for a seed does not depend on how many windows a page needs.
    items: List[VirtualProduct] = []
    seen = set()
    fetched = 0
    window_no = 0
    exhausted = base_count == 0
    while not exhausted and len(items) < start + per_page:
        rows = _fetch(db, query, fetched, window_size)
        fetched += len(rows)
        exhausted = len(rows) < window_size or fetched >= base_count
        listings = _expand(db, _dedup(rows, seen))
        if seed is not None:
            listings = _order(listings, seed + window_no, items)
        items.extend(listings)
        window_no += 1

    page_items = items[start:start + per_page]

    if exhausted:
        total = len(items)
    else:
        # Listings per base row read so far, projected onto the full match count
        total = max(round(len(items) / fetched * base_count), len(items))

    logger.debug(
        "Catalog page=%s rows=%s/%s listings=%s total=%s seed=%s",
        page, fetched, base_count, len(items), total, seed,
    )
    return {
        "products": [vp.to_public() for vp in page_items],
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": math.ceil(total / per_page) if total else 0,
        "has_more": start + len(page_items) < len(items) or not exhausted,
        "total_is_estimate": not exhausted,
        "seed": seed,
    }


def featured_products(db: Session, limit: int = FEATURED_LIMIT) -> List[dict]:
    page = assemble_catalog(db, CatalogFilters(page=1, per_page=limit))
    return page["products"]


def product_detail(db: Session, product_id: int, variant_id: Optional[int] = None) -> dict:
    product = _visible(db.query(Product)).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found", field="product_id")

    stock = stock_resolver.availability_of(db, product)

    if variant_id is not None:
        variant = (
            db.query(ProductVariant)
            .filter(
                ProductVariant.id == variant_id,
                ProductVariant.parent_id == product.id,
                ProductVariant.active.is_(True),
            )
            .first()
        )
        if not variant:
            raise NotFoundError("Variant not found", field="variant_id")
        item = _from_variant(product, variant, stock)
    else:
        images = _load_images(db, [product.id]).get(product.id, [])
        item = _from_product(product, images, stock)

    detail = item.to_public()
    detail["stock"] = stock
    detail["components"] = []
    detail["variants"] = []

    if product.is_composite:
        detail["components"] = [
            {"id": comp.id, "name": comp.name, "quantity": rel.quantity, "image_url": comp.image_url}
            for rel, comp in stock_resolver.load_components(db, product.id)
        ]
    if product.is_variant_parent:
        options = _load_variants(db, [product.id]) or {}
        detail["variants"] = [
            {"variant_id": v.id, "name": v.name, "image_url": v.image_url}
            for v in options.get(product.id, [])
        ]
    return detail


def public_categories(db: Session) -> List[str]:
    rows = (
        _visible(db.query(Product.category))
        .filter(Product.category.isnot(None), Product.category != "")
        .distinct()
        .all()
    )
    return sorted({r[0].strip() for r in rows if r[0] and r[0].strip()})
