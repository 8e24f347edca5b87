# backend/models/stock.py
import enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class MovementType(str, enum.Enum):
    ENTRY = "Entry"
    EXIT = "Exit"
    ADJUSTMENT = "Adjustment"


# Ledger entry: one row per change of a product's raw stock counter.
# Rows are append-only; nothing updates or deletes them.
class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    type = Column(Enum(MovementType), nullable=False, index=True)
    # Magnitude of the change, always positive
    qty = Column(Integer, CheckConstraint("qty > 0"), nullable=False)
    reason = Column(String, nullable=True)
    # Operator identity as reported by the auth service (email or "System")
    operator = Column(String, nullable=False, default="System")

    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    product = relationship("Product")
