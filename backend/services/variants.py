# backend/services/variants.py
import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import transaction
from exceptions import LimitExceededError, NotFoundError, ValidationError
from models.product import Product
from models.variant import ProductVariant

logger = logging.getLogger(__name__)


def validate_image_url(url: Optional[str]) -> str:
    if not url or not url.strip():
        raise ValidationError("Image URL is required", field="image_url")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError("Invalid image URL", field="image_url")

    allowed = settings.IMAGE_URL_ALLOWED_HOSTS
    if allowed:
        host = parsed.hostname.lower()
        if parsed.scheme != "https" or not any(host == h or host.endswith("." + h) for h in allowed):
            raise ValidationError("Image URL must come from the image service", field="image_url")
    return url


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Variant name is required", field="name")
    return name


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description.strip() or None


def count_variants(db: Session, parent_id: int, only_active: bool = False) -> int:
    query = db.query(func.count(ProductVariant.id)).filter(ProductVariant.parent_id == parent_id)
    if only_active:
        query = query.filter(ProductVariant.active.is_(True))
    return query.scalar() or 0


def create_variant(
    db: Session,
    parent_id: int,
    name: str,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    display_order: int = 0,
    active: bool = True,
) -> ProductVariant:
    name = _clean_name(name)
    image_url = validate_image_url(image_url)

    parent = db.query(Product).filter(Product.id == parent_id).first()
    if not parent:
        raise NotFoundError(f"Parent product {parent_id} not found", field="parent_id")

    if count_variants(db, parent_id) >= settings.MAX_VARIANTS_PER_PRODUCT:
        raise LimitExceededError(
            f"Maximum variant limit reached ({settings.MAX_VARIANTS_PER_PRODUCT} per product)",
            field="parent_id",
        )

    with transaction(db):
        variant = ProductVariant(
            parent_id=parent_id, name=name,
            description=_clean_description(description),
            image_url=image_url, display_order=display_order or 0,
            active=True if active is None else active,
        )
        db.add(variant)
        if not parent.is_variant_parent:
            parent.is_variant_parent = True
    db.refresh(variant)

    logger.info("Created variant %s for product %s", variant.id, parent_id)
    return variant


def get_variant(db: Session, variant_id: int) -> ProductVariant:
    variant = db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    if not variant:
        raise NotFoundError(f"Variant {variant_id} not found", field="variant_id")
    return variant


def list_variants(db: Session, parent_id: int, only_active: bool = False) -> List[ProductVariant]:
    query = db.query(ProductVariant).filter(ProductVariant.parent_id == parent_id)
    if only_active:
        query = query.filter(ProductVariant.active.is_(True))
    return query.order_by(
        ProductVariant.display_order.asc(), ProductVariant.created_at.asc(), ProductVariant.id.asc()
    ).all()


def active_variants_by_parent(db: Session, parent_ids: Iterable[int]) -> Dict[int, List[ProductVariant]]:
    """Active variants of many parents in a single query, grouped by parent id."""
    parent_ids = list(parent_ids)
    if not parent_ids:
        return {}

    rows = (
        db.query(ProductVariant)
        .filter(ProductVariant.parent_id.in_(parent_ids), ProductVariant.active.is_(True))
        .order_by(ProductVariant.display_order.asc(), ProductVariant.created_at.asc(), ProductVariant.id.asc())
        .all()
    )
    grouped: Dict[int, List[ProductVariant]] = {}
    for v in rows:
        grouped.setdefault(v.parent_id, []).append(v)
    return grouped


def update_variant(db: Session, variant_id: int, changes: dict) -> ProductVariant:
    variant = get_variant(db, variant_id)

    updates = {}
    if changes.get("name") is not None:
        updates["name"] = _clean_name(changes["name"])
    if "description" in changes:
        updates["description"] = _clean_description(changes["description"])
    if changes.get("image_url") is not None:
        updates["image_url"] = validate_image_url(changes["image_url"])
    if changes.get("display_order") is not None:
        updates["display_order"] = changes["display_order"]
    if changes.get("active") is not None:
        updates["active"] = changes["active"]

    with transaction(db):
        for key, value in updates.items():
            setattr(variant, key, value)
    db.refresh(variant)
    return variant


def remove_variant(db: Session, variant_id: int) -> int:
    """Delete a variant; returns the parent id."""
    variant = get_variant(db, variant_id)
    parent_id = variant.parent_id

    with transaction(db):
        db.delete(variant)
        db.flush()
        if count_variants(db, parent_id) == 0:
            parent = db.query(Product).filter(Product.id == parent_id).first()
            if parent:
                parent.is_variant_parent = False

    logger.info("Removed variant %s of product %s", variant_id, parent_id)
    return parent_id


def reorder_variants(db: Session, orders: List[dict]) -> List[ProductVariant]:
    if not orders:
        raise ValidationError("orders must not be empty", field="orders")

    ids = [o["id"] for o in orders]
    if len(set(ids)) != len(ids):
        raise ValidationError("Each variant may appear only once", field="orders")

    variants = {v.id: v for v in db.query(ProductVariant).filter(ProductVariant.id.in_(ids)).all()}
    missing = [i for i in ids if i not in variants]
    if missing:
        raise NotFoundError(f"Variant {missing[0]} not found", field="orders")
    if len({v.parent_id for v in variants.values()}) > 1:
        raise ValidationError("All variants must belong to the same product", field="orders")

    with transaction(db):
        for o in orders:
            variants[o["id"]].display_order = o["display_order"]

    parent_id = next(iter(variants.values())).parent_id
    return list_variants(db, parent_id)
