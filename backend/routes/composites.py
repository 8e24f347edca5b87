# backend/routes/composites.py
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from services import stock_resolver
from utils.tokenJWT import get_current_user, CATALOG_ROLES
from utils.audit import write_log
import schemas.composite as composite_schemas

router = APIRouter(prefix="/composites", tags=["Composites"])


def _role_ok(user: User) -> bool:
    return (user.role or "").upper() in CATALOG_ROLES

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("/{set_id}/components", response_model=composite_schemas.ComponentList)
def list_components(
    set_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product_set = stock_resolver.get_product(db, set_id)
    items = stock_resolver.describe_components(db, set_id)
    return {
        "items": items,
        "total": len(items),
        "available": stock_resolver.availability_of(db, product_set),
    }


@router.get("/{product_id}/validate-stock", response_model=composite_schemas.StockCheck)
def validate_stock(
    product_id: int,
    quantity: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    available = stock_resolver.resolve_availability(db, product_id)
    return {
        "product_id": product_id,
        "available": available,
        "requested": quantity,
        "sufficient": available >= quantity,
    }


@router.post("/components", response_model=composite_schemas.ComponentOut, status_code=201)
def add_component(
    payload: composite_schemas.ComponentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    relation = stock_resolver.add_component(
        db, payload.set_id, payload.component_id, payload.quantity, payload.display_order,
    )
    write_log(
        db, operator=current_user.email, action="COMPONENT_ADD", resource="composites",
        resource_id=relation.set_id, ip=_client_ip(request),
        meta={"component_id": relation.component_id, "quantity": relation.quantity},
    )
    return relation


@router.patch("/components/{relation_id}", response_model=composite_schemas.ComponentOut)
def update_component(
    relation_id: int,
    payload: composite_schemas.ComponentQuantityUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    relation = stock_resolver.update_component_quantity(db, relation_id, payload.quantity)
    write_log(
        db, operator=current_user.email, action="COMPONENT_UPDATE", resource="composites",
        resource_id=relation.set_id, ip=_client_ip(request),
        meta={"relation_id": relation.id, "quantity": relation.quantity},
    )
    return relation


@router.delete("/components/{relation_id}")
def remove_component(
    relation_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    set_id = stock_resolver.remove_component(db, relation_id)
    write_log(
        db, operator=current_user.email, action="COMPONENT_REMOVE", resource="composites",
        resource_id=set_id, ip=_client_ip(request), meta={"relation_id": relation_id},
    )
    return {"detail": "Component removed", "set_id": set_id}
