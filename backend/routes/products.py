# backend/routes/products.py
from typing import Optional, List
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user, CATALOG_ROLES, STOCK_ROLES
from utils.audit import write_log
from models.users import User
from models.product import Product, ProductStatus
from services import products as registry
from services import stock_resolver
import schemas.product as product_schemas

router = APIRouter(tags=["Products"])


# ---- HELPERS ----
def _role_ok(user: User) -> bool:
    """Catalog edits: ADMIN/SALESMAN."""
    return (user.role or "").upper() in CATALOG_ROLES

def _can_manage_stock(user: User) -> bool:
    """Read access: ADMIN/SALESMAN/WAREHOUSE."""
    return (user.role or "").upper() in STOCK_ROLES

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

def _serialize(db: Session, p: Product, available: Optional[int] = None) -> product_schemas.ProductOut:
    out = product_schemas.ProductOut.model_validate(p)
    out.available = available if available is not None else stock_resolver.availability_of(db, p)
    return out


# =========================
# PRODUCT LIST
# =========================
@router.get("/products", response_model=product_schemas.ProductListPage)
def list_products(
    q: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    status: Optional[ProductStatus] = Query(None),
    low_stock: bool = Query(False),
    out_of_stock: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized to view products")

    items, total = registry.list_products(
        db, q=q, category=category, min_price=min_price, max_price=max_price,
        status=status, low_stock=low_stock, out_of_stock=out_of_stock,
        page=page, page_size=page_size,
    )

    availability = stock_resolver.bulk_availability(db, items)
    serialized = [_serialize(db, p, availability.get(p.id, p.stock_quantity)) for p in items]
    return {"items": serialized, "total": total, "page": page, "page_size": page_size}


# =========================
# LOOKUPS
# =========================
@router.get("/products/unique/categories", response_model=List[str])
def get_product_categories(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return registry.list_categories(db)

@router.get("/products/low-stock", response_model=List[product_schemas.ProductOut])
def get_low_stock(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    return [_serialize(db, p, p.stock_quantity) for p in registry.list_low_stock(db)]


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/products/{product_id}", response_model=product_schemas.ProductOut)
def get_product(
    product_id: int,
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")
    return _serialize(db, stock_resolver.get_product(db, product_id))


@router.get("/products/{product_id}/sets", response_model=List[product_schemas.SetReference])
def get_containing_sets(
    product_id: int,
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    """Sets that list this product as a component; shown before discontinuing it."""
    stock_resolver.get_product(db, product_id)
    return [
        {"set_id": s.id, "code": s.code, "name": s.name, "quantity": rel.quantity}
        for rel, s in stock_resolver.sets_containing(db, product_id)
    ]


# =========================
# CREATE
# =========================
@router.post("/products", response_model=product_schemas.ProductOut, status_code=201)
def add_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized to add products")

    product = registry.create_product(db, payload.model_dump(), operator=current_user.email)

    write_log(
        db, operator=current_user.email, action="PRODUCT_CREATE", resource="products",
        resource_id=product.id, ip=_client_ip(request),
        meta={"code": product.code, "stock": product.stock_quantity},
    )
    return _serialize(db, product)


# =========================
# PARTIAL EDIT
# =========================
@router.patch("/products/{product_id}", response_model=product_schemas.ProductOut)
def edit_product(
    product_id: int,
    payload: product_schemas.ProductEditRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    changes = payload.model_dump(exclude_unset=True)
    product = registry.update_product(db, product_id, changes)

    write_log(
        db, operator=current_user.email, action="PRODUCT_EDIT", resource="products",
        resource_id=product.id, ip=_client_ip(request), meta={"fields": sorted(changes)},
    )
    return _serialize(db, product)


# =========================
# DISCONTINUE
# =========================
@router.delete("/products/{product_id}", response_model=product_schemas.ProductOut)
def discontinue_product(
    product_id: int, request: Request, db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(403, "Not authorized")

    product = registry.discontinue_product(db, product_id)
    write_log(
        db, operator=current_user.email, action="PRODUCT_DISCONTINUE", resource="products",
        resource_id=product.id, ip=_client_ip(request),
    )
    return _serialize(db, product)
