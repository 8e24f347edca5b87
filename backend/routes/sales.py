# backend/routes/sales.py
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from services import stock_ledger, stock_resolver
from utils.tokenJWT import get_current_user, STOCK_ROLES
from utils.audit import write_log
import schemas.stock as stock_schemas
import schemas.composite as composite_schemas

# Entry points used by the POS and the online order flow
router = APIRouter(prefix="/sales", tags=["Sales"])


def _role_ok(user: User) -> bool:
    return (user.role or "").upper() in STOCK_ROLES

def _result(lines: int, movements) -> dict:
    return {
        "lines": lines,
        "movements": [
            {
                "id": m.id, "created_at": m.created_at, "product_id": m.product_id,
                "product_code": m.product.code, "product_name": m.product.name,
                "type": m.type, "qty": m.qty, "reason": m.reason, "operator": m.operator,
                "stock_before": m.stock_before, "stock_after": m.stock_after,
            }
            for m in movements
        ],
    }


@router.post("/lines", response_model=stock_schemas.StockLinesResult)
def sell_lines(
    payload: stock_schemas.StockLinesRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    lines = [line.model_dump() for line in payload.lines]
    movements = stock_ledger.apply_sale_lines(db, lines, reason=payload.reason, operator=current_user.email)

    write_log(
        db, operator=current_user.email, action="SALE_LINES", resource="sales",
        ip=request.client.host if request.client else None,
        meta={"lines": lines, "movements": [m.id for m in movements]},
    )
    return _result(len(lines), movements)


@router.post("/returns", response_model=stock_schemas.StockLinesResult)
def return_lines(
    payload: stock_schemas.StockLinesRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not _role_ok(current_user):
        raise HTTPException(status_code=403, detail="Not authorized")

    lines = [line.model_dump() for line in payload.lines]
    movements = stock_ledger.apply_return_lines(db, lines, reason=payload.reason, operator=current_user.email)

    write_log(
        db, operator=current_user.email, action="RETURN_LINES", resource="sales",
        ip=request.client.host if request.client else None,
        meta={"lines": lines, "movements": [m.id for m in movements]},
    )
    return _result(len(lines), movements)


@router.post("/check", response_model=composite_schemas.StockCheck)
def check_line(
    payload: stock_schemas.StockLine,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Validate one order line (exists, Active, enough stock) without touching stock."""
    product = stock_ledger.check_orderable(db, payload.product_id, payload.quantity)
    available = stock_resolver.availability_of(db, product)
    return {
        "product_id": product.id, "available": available,
        "requested": payload.quantity, "sufficient": True,
    }
