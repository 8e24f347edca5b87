# backend/services/products.py
import logging
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from config import settings
from database import transaction
from exceptions import ConflictError, ValidationError
from models.product import Product, ProductStatus
from services import stock_ledger, stock_resolver

logger = logging.getLogger(__name__)

# Fields an edit may touch; the raw stock counter is changed only through the ledger
EDITABLE_FIELDS = (
    "name", "code", "description", "category", "supplier", "location", "cost",
    "sale_price", "currency", "min_stock", "status", "show_in_storefront", "image_url",
)


def norm_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    c = code.strip().upper()
    return c if c else None


def _code_taken(db: Session, code: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Product.id).filter(func.upper(Product.code) == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def create_product(db: Session, data: dict, operator: Optional[str] = None) -> Product:
    code = norm_code(data.get("code"))
    if not code:
        raise ValidationError("Product code is required", field="code")
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Product name is required", field="name")
    if _code_taken(db, code):
        raise ConflictError("Product code already exists", field="code", context={"code": code})

    stock = data.get("stock_quantity") or 0
    if stock < 0:
        raise ValidationError("Stock must be >= 0", field="stock_quantity")

    with transaction(db):
        product = Product(
            code=code,
            name=name,
            description=data.get("description"),
            category=(data.get("category") or "").strip() or None,
            supplier=data.get("supplier"),
            location=data.get("location"),
            cost=data.get("cost") or 0,
            sale_price=data.get("sale_price") or 0,
            currency=(data.get("currency") or settings.DEFAULT_CURRENCY).upper(),
            stock_quantity=stock,
            min_stock=settings.DEFAULT_MIN_STOCK if data.get("min_stock") is None else data["min_stock"],
            status=data.get("status") or ProductStatus.ACTIVE,
            show_in_storefront=True if data.get("show_in_storefront") is None else data["show_in_storefront"],
            image_url=data.get("image_url"),
            is_composite=False,
            is_variant_parent=False,
        )
        db.add(product)
        db.flush()
        stock_ledger.record_initial_stock(db, product, operator)
    db.refresh(product)

    logger.info("Created product %s (%s)", product.id, product.code)
    return product


def update_product(db: Session, product_id: int, changes: dict) -> Product:
    product = stock_resolver.get_product(db, product_id)

    if "stock_quantity" in changes:
        raise ValidationError("Stock is changed through stock movements", field="stock_quantity")

    updates = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    if "code" in updates:
        code = norm_code(updates["code"])
        if not code:
            raise ValidationError("Product code is required", field="code")
        if code != product.code and _code_taken(db, code, exclude_id=product.id):
            raise ConflictError("Product code already exists", field="code", context={"code": code})
        updates["code"] = code
    if "name" in updates:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise ValidationError("Product name is required", field="name")
    if "currency" in updates:
        updates["currency"] = updates["currency"].upper()

    with transaction(db):
        for key, value in updates.items():
            setattr(product, key, value)
    db.refresh(product)
    return product


def discontinue_product(db: Session, product_id: int) -> Product:
    """Soft delete: the row stays for the ledger and for the sets that list it."""
    product = stock_resolver.get_product(db, product_id)
    with transaction(db):
        product.status = ProductStatus.DISCONTINUED
    db.refresh(product)
    logger.info("Discontinued product %s", product_id)
    return product


def list_products(
    db: Session,
    q: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    status: Optional[ProductStatus] = None,
    low_stock: bool = False,
    out_of_stock: bool = False,
    page: int = 1,
    page_size: int = 20,
):
    query = db.query(Product)

    if q:
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Product.code.ilike(like),
                Product.name.ilike(like),
                Product.description.ilike(like),
                Product.category.ilike(like),
                Product.supplier.ilike(like),
            )
        )
    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())
    if min_price is not None:
        query = query.filter(Product.sale_price >= min_price)
    if max_price is not None:
        query = query.filter(Product.sale_price <= max_price)
    if status:
        query = query.filter(Product.status == ProductStatus(status))
    if low_stock:
        query = query.filter(Product.stock_quantity <= Product.min_stock)
    if out_of_stock:
        query = query.filter(Product.stock_quantity == 0)

    total = query.count()
    items = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * page_size).limit(page_size).all()
    )
    return items, total


def list_low_stock(db: Session) -> List[Product]:
    return (
        db.query(Product)
        .filter(
            Product.status == ProductStatus.ACTIVE,
            Product.is_composite.is_(False),
            Product.stock_quantity <= Product.min_stock,
        )
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


def list_categories(db: Session) -> List[str]:
    values = db.query(Product.category).distinct().filter(Product.category != None, Product.category != "").all()  # noqa: E711
    return sorted(v[0] for v in values)
