# backend/routes/stock.py
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from database import get_db
from models.stock import MovementType
from models.users import User
from services import stock_ledger
from utils.tokenJWT import get_current_user, STOCK_ROLES
from utils.audit import write_log
import schemas.stock as stock_schemas

router = APIRouter(tags=["Stock"])

# Check permissions for stock management (Admin, Warehouse, Salesman)
def _can_manage_stock(user: User) -> bool:
    return (user.role or "").upper() in STOCK_ROLES

def _movement_out(movement, product) -> dict:
    return {
        "id": movement.id, "created_at": movement.created_at,
        "product_id": movement.product_id,
        "product_code": product.code if product else None,
        "product_name": product.name if product else None,
        "type": movement.type, "qty": movement.qty, "reason": movement.reason,
        "operator": movement.operator,
        "stock_before": movement.stock_before, "stock_after": movement.stock_after,
    }


@router.get("/", response_model=stock_schemas.StockMovementPage)
def list_movements(
    q: Optional[str] = Query(None),
    product_id: Optional[int] = Query(None),
    type: Optional[MovementType] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    rows, total = stock_ledger.list_movements(
        db, product_id=product_id, kind=type, q=q,
        date_from=date_from, date_to=date_to, page=page, page_size=page_size,
    )
    items = [_movement_out(m, p) for m, p in rows]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.post("/movement", response_model=Optional[stock_schemas.StockMovementResponse])
def register_movement(
    payload: stock_schemas.StockMovementCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    movement = stock_ledger.record_movement(
        db, payload.product_id, payload.type, payload.quantity,
        reason=payload.reason, operator=current_user.email,
    )
    if movement is None:
        return None

    write_log(
        db, operator=current_user.email, action="STOCK_MOVEMENT", resource="stock",
        resource_id=movement.product_id, ip=request.client.host if request.client else None,
        meta={"id": movement.id, "type": movement.type.value, "qty": movement.qty},
    )
    return _movement_out(movement, movement.product)


@router.post("/adjust", response_model=Optional[stock_schemas.StockMovementResponse])
def adjust_stock(
    payload: stock_schemas.StockAdjustment,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Stock-take correction. Returns null when the counter already matches."""
    if not _can_manage_stock(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    movement = stock_ledger.record_manual_adjustment(
        db, payload.product_id, payload.new_stock,
        reason=payload.reason, operator=current_user.email,
    )
    if movement is None:
        return None

    write_log(
        db, operator=current_user.email, action="STOCK_ADJUSTMENT", resource="stock",
        resource_id=movement.product_id, ip=request.client.host if request.client else None,
        meta={"id": movement.id, "before": movement.stock_before, "after": movement.stock_after},
    )
    return _movement_out(movement, movement.product)
