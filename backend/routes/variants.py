# backend/routes/variants.py
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from services import stock_resolver
from services import variants as variant_group
from utils.tokenJWT import get_current_user, CATALOG_ROLES
from utils.audit import write_log
import schemas.variant as variant_schemas

router = APIRouter(prefix="/variants", tags=["Variants"])


def _role_ok(user: User) -> bool:
    return (user.role or "").upper() in CATALOG_ROLES

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("/product/{parent_id}", response_model=variant_schemas.VariantList)
def list_variants(
    parent_id: int,
    only_active: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    stock_resolver.get_product(db, parent_id)
    items = variant_group.list_variants(db, parent_id, only_active=only_active)
    return {"items": items, "total": len(items)}


@router.get("/{variant_id}", response_model=variant_schemas.VariantOut)
def get_variant(
    variant_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return variant_group.get_variant(db, variant_id)


@router.post("", response_model=variant_schemas.VariantOut, status_code=201)
def create_variant(
    payload: variant_schemas.VariantCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    variant = variant_group.create_variant(
        db, payload.parent_id, payload.name, payload.description,
        payload.image_url, payload.display_order, payload.active,
    )
    write_log(
        db, operator=current_user.email, action="VARIANT_CREATE", resource="variants",
        resource_id=variant.id, ip=_client_ip(request), meta={"parent_id": variant.parent_id},
    )
    return variant


@router.put("/reorder", response_model=variant_schemas.VariantList)
def reorder_variants(
    payload: variant_schemas.VariantReorder,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    items = variant_group.reorder_variants(db, [o.model_dump() for o in payload.orders])
    write_log(
        db, operator=current_user.email, action="VARIANT_REORDER", resource="variants",
        ip=_client_ip(request), meta={"count": len(payload.orders)},
    )
    return {"items": items, "total": len(items)}


@router.patch("/{variant_id}", response_model=variant_schemas.VariantOut)
def update_variant(
    variant_id: int,
    payload: variant_schemas.VariantUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    changes = payload.model_dump(exclude_unset=True)
    variant = variant_group.update_variant(db, variant_id, changes)
    write_log(
        db, operator=current_user.email, action="VARIANT_UPDATE", resource="variants",
        resource_id=variant.id, ip=_client_ip(request), meta={"fields": sorted(changes)},
    )
    return variant


@router.delete("/{variant_id}")
def delete_variant(
    variant_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    parent_id = variant_group.remove_variant(db, variant_id)
    write_log(
        db, operator=current_user.email, action="VARIANT_DELETE", resource="variants",
        resource_id=variant_id, ip=_client_ip(request), meta={"parent_id": parent_id},
    )
    return {"detail": "Variant deleted", "parent_id": parent_id}
