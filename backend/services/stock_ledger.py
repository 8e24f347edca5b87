# backend/services/stock_ledger.py
"""Stock mutations and their ledger.

Every change of a raw stock counter goes through this module and appends
exactly one StockMovement in the same transaction. Decrements are single
conditional UPDATEs (``... WHERE stock_quantity >= :units``), so concurrent
sales can never drive a counter below zero: the loser of a race sees zero
affected rows and its whole line is rolled back.

A sale or return of a set fans out to its components; the set's own counter
is never touched and gets no ledger entry.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from config import settings
from database import transaction
from exceptions import InsufficientStockError, NotFoundError, ValidationError
from models.product import Product, ProductStatus
from models.stock import MovementType, StockMovement
from services import stock_resolver

logger = logging.getLogger(__name__)

SYSTEM_OPERATOR = "System"


def _check_quantity(quantity) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", field="quantity")
    return quantity


def _units_per_row(db: Session, product: Product, quantity: int, depth: int = 0) -> Dict[int, int]:
    """Raw-counter units touched by `quantity` of `product`, keyed by product id.

    Nested sets are expanded down to their non-composite rows; a row reached
    through several paths is aggregated so it gets a single update.
    """
    if not product.is_composite:
        return {product.id: quantity}
    if depth > settings.MAX_COMPOSITE_DEPTH:
        raise ValidationError(f"Set {product.id} is nested too deeply", field="product_id")

    units: Dict[int, int] = {}
    for relation, component in stock_resolver.load_components(db, product.id):
        for row_id, n in _units_per_row(db, component, relation.quantity * quantity, depth + 1).items():
            units[row_id] = units.get(row_id, 0) + n
    return units


def _current_stock(db: Session, product_id: int) -> int:
    return db.execute(select(Product.stock_quantity).where(Product.id == product_id)).scalar_one()


def _append(db: Session, product_id: int, kind: MovementType, qty: int, reason, operator, before: int, after: int) -> StockMovement:
    movement = StockMovement(
        product_id=product_id, type=kind, qty=qty, reason=reason,
        operator=operator or SYSTEM_OPERATOR, stock_before=before, stock_after=after,
    )
    db.add(movement)
    return movement


def _decrement(db: Session, product_id: int, units: int) -> Optional[int]:
    """Atomically take `units` off a counter; returns the new value, or None if short."""
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= units)
        .values(stock_quantity=Product.stock_quantity - units, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return _current_stock(db, product_id)


def _increment(db: Session, product_id: int, units: int) -> int:
    db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + units, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return _current_stock(db, product_id)


def _line_reason(product: Product, reason: Optional[str], default: str) -> str:
    reason = reason or default
    if product.is_composite:
        return f"{reason} (Set: {product.name})"
    return reason


def _insufficient(db: Session, product: Product, requested: int) -> InsufficientStockError:
    return InsufficientStockError(
        product.name, product_id=product.id,
        available=stock_resolver.availability_of(db, product),
        requested=requested, is_set=bool(product.is_composite),
    )


def _sale_line(db: Session, product_id: int, quantity: int, reason, operator) -> List[StockMovement]:
    quantity = _check_quantity(quantity)
    product = stock_resolver.get_product(db, product_id)

    available = stock_resolver.availability_of(db, product)
    if available < quantity:
        raise InsufficientStockError(
            product.name, product_id=product.id, available=available,
            requested=quantity, is_set=bool(product.is_composite),
        )

    units = _units_per_row(db, product, quantity)
    text = _line_reason(product, reason, "Sale")
    movements = []
    # Ascending id order keeps row locks in a consistent order across transactions
    for row_id in sorted(units):
        n = units[row_id]
        after = _decrement(db, row_id, n)
        if after is None:
            # Lost a race after the availability check; caller rolls back the line
            raise _insufficient(db, product, quantity)
        movements.append(_append(db, row_id, MovementType.EXIT, n, text, operator, after + n, after))
    return movements


def _return_line(db: Session, product_id: int, quantity: int, reason, operator) -> List[StockMovement]:
    quantity = _check_quantity(quantity)
    product = stock_resolver.get_product(db, product_id)

    units = _units_per_row(db, product, quantity)
    if not units:
        raise ValidationError(f'Set "{product.name}" has no components', field="product_id")

    text = _line_reason(product, reason, "Return")
    movements = []
    for row_id in sorted(units):
        n = units[row_id]
        after = _increment(db, row_id, n)
        movements.append(_append(db, row_id, MovementType.ENTRY, n, text, operator, after - n, after))
    return movements


def _apply(db: Session, fn, lines: Sequence[dict], reason, operator) -> List[StockMovement]:
    movements: List[StockMovement] = []
    with transaction(db):
        for line in lines:
            movements.extend(fn(db, line["product_id"], line["quantity"], reason, operator))
            # Counters were changed behind the ORM; reload them for the next line
            db.flush()
            db.expire_all()
    for m in movements:
        db.refresh(m)
    return movements


def apply_sale_line(db: Session, product_id: int, quantity: int, reason: Optional[str] = None,
                    operator: Optional[str] = None) -> List[StockMovement]:
    """Sell `quantity` units of a product or set. All or nothing."""
    movements = _apply(db, _sale_line, [{"product_id": product_id, "quantity": quantity}], reason, operator)
    logger.info("Sale line product=%s qty=%s movements=%s", product_id, quantity, len(movements))
    return movements


def apply_return_line(db: Session, product_id: int, quantity: int, reason: Optional[str] = None,
                      operator: Optional[str] = None) -> List[StockMovement]:
    """Put `quantity` units back, mirroring the fan-out of a sale."""
    movements = _apply(db, _return_line, [{"product_id": product_id, "quantity": quantity}], reason, operator)
    logger.info("Return line product=%s qty=%s movements=%s", product_id, quantity, len(movements))
    return movements


def apply_sale_lines(db: Session, lines: Sequence[dict], reason: Optional[str] = None,
                     operator: Optional[str] = None) -> List[StockMovement]:
    """Apply several sale lines in one transaction; any failure undoes all of them."""
    if not lines:
        raise ValidationError("At least one line is required", field="lines")
    return _apply(db, _sale_line, lines, reason, operator)


def apply_return_lines(db: Session, lines: Sequence[dict], reason: Optional[str] = None,
                       operator: Optional[str] = None) -> List[StockMovement]:
    if not lines:
        raise ValidationError("At least one line is required", field="lines")
    return _apply(db, _return_line, lines, reason, operator)


def _locked_plain_product(db: Session, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not product:
        raise NotFoundError(f"Product {product_id} not found", field="product_id")
    if product.is_composite:
        raise ValidationError(
            "Stock of a set is derived from its components and cannot be set directly",
            field="product_id",
        )
    return product


def record_manual_adjustment(db: Session, product_id: int, new_stock: int, reason: Optional[str] = None,
                             operator: Optional[str] = None) -> Optional[StockMovement]:
    """Set a plain product's counter to `new_stock` (stock-take correction).

    Returns the ledger entry, or None when the counter already holds `new_stock`.
    """
    if not isinstance(new_stock, int) or isinstance(new_stock, bool) or new_stock < 0:
        raise ValidationError("Stock must be a non-negative integer", field="new_stock")

    with transaction(db):
        product = _locked_plain_product(db, product_id)
        before = product.stock_quantity
        if before == new_stock:
            return None
        product.stock_quantity = new_stock
        movement = _append(
            db, product.id, MovementType.ADJUSTMENT, abs(new_stock - before),
            reason or "Manual adjustment", operator, before, new_stock,
        )
    db.refresh(movement)
    logger.info("Adjusted stock of product %s: %s -> %s", product_id, before, new_stock)
    return movement


def record_movement(db: Session, product_id: int, kind: MovementType, quantity: int,
                    reason: Optional[str] = None, operator: Optional[str] = None) -> Optional[StockMovement]:
    """Back-office movement: Entry adds, Exit removes, Adjustment sets the absolute value."""
    kind = MovementType(kind)
    if kind == MovementType.ADJUSTMENT:
        return record_manual_adjustment(db, product_id, quantity, reason, operator)

    quantity = _check_quantity(quantity)
    with transaction(db):
        product = _locked_plain_product(db, product_id)
        if kind == MovementType.ENTRY:
            after = _increment(db, product.id, quantity)
            movement = _append(db, product.id, kind, quantity, reason or "Entry", operator, after - quantity, after)
        else:
            after = _decrement(db, product.id, quantity)
            if after is None:
                raise InsufficientStockError(
                    product.name, product_id=product.id,
                    available=_current_stock(db, product.id), requested=quantity,
                )
            movement = _append(db, product.id, kind, quantity, reason or "Exit", operator, after + quantity, after)
    db.refresh(movement)
    return movement


def record_initial_stock(db: Session, product: Product, operator: Optional[str] = None) -> Optional[StockMovement]:
    """Ledger row for the opening stock of a freshly created product (caller commits)."""
    if product.is_composite or not product.stock_quantity:
        return None
    return _append(
        db, product.id, MovementType.ENTRY, product.stock_quantity,
        "Initial stock", operator, 0, product.stock_quantity,
    )


def check_orderable(db: Session, product_id: int, quantity: int) -> Product:
    """Validate one line of an online order without touching stock."""
    quantity = _check_quantity(quantity)
    product = stock_resolver.get_product(db, product_id)
    if product.status != ProductStatus.ACTIVE:
        raise ValidationError(f'Product "{product.name}" is not available', field="product_id")

    available = stock_resolver.availability_of(db, product)
    if available < quantity:
        raise InsufficientStockError(
            product.name, product_id=product.id, available=available,
            requested=quantity, is_set=bool(product.is_composite),
        )
    return product


def list_movements(db: Session, product_id: Optional[int] = None, kind: Optional[MovementType] = None,
                   q: Optional[str] = None, date_from: Optional[datetime] = None,
                   date_to: Optional[datetime] = None, page: int = 1, page_size: int = 50):
    query = db.query(StockMovement, Product).join(Product, Product.id == StockMovement.product_id)

    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if kind:
        query = query.filter(StockMovement.type == MovementType(kind))
    if q:
        like = f"%{q}%"
        query = query.filter((Product.name.ilike(like)) | (Product.code.ilike(like)))
    if date_from:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to:
        query = query.filter(StockMovement.created_at <= date_to)

    total = query.count()
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * page_size).limit(page_size).all()
    )
    return rows, total
