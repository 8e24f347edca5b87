# backend/services/images.py
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from models.image import ProductImage


# Read-side adapter over the image directory (owned by the image service)
def images_by_product(db: Session, product_ids: Iterable[int]) -> Dict[int, List[ProductImage]]:
    """Ordered images for many products in one query."""
    product_ids = list(product_ids)
    if not product_ids:
        return {}

    rows = (
        db.query(ProductImage)
        .filter(ProductImage.product_id.in_(product_ids))
        .order_by(ProductImage.display_order.asc(), ProductImage.id.asc())
        .all()
    )
    grouped: Dict[int, List[ProductImage]] = {}
    for img in rows:
        grouped.setdefault(img.product_id, []).append(img)
    return grouped


def primary_url(images: List[ProductImage], fallback: Optional[str]) -> Optional[str]:
    for img in images:
        if img.is_primary:
            return img.url
    if images:
        return images[0].url
    return fallback


def as_public(images: List[ProductImage]) -> List[dict]:
    return [{"url": i.url, "display_order": i.display_order, "is_primary": i.is_primary} for i in images]
