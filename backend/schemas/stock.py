# backend/schemas/stock.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import List, Optional

from models.stock import MovementType


# Manual movement registered from the back office
class StockMovementCreate(BaseModel):
    product_id: int
    type: MovementType
    # Entry/Exit: units moved. Adjustment: the new absolute counter value.
    quantity: int = Field(ge=0)
    reason: Optional[str] = None


# Stock-take correction: set the counter to an absolute value
class StockAdjustment(BaseModel):
    product_id: int
    new_stock: int = Field(ge=0)
    reason: Optional[str] = None


# Schema for returning stock movement details
class StockMovementResponse(BaseModel):
    id: int
    created_at: Optional[datetime] = None
    product_id: int
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    type: MovementType
    qty: int
    reason: Optional[str] = None
    operator: str
    stock_before: int
    stock_after: int

    model_config = ConfigDict(from_attributes=True)


# Paginated response for stock movement history
class StockMovementPage(BaseModel):
    items: List[StockMovementResponse]
    total: int
    page: int
    page_size: int


# One logical line of a sale or return
class StockLine(BaseModel):
    product_id: int
    quantity: int


class StockLinesRequest(BaseModel):
    lines: List[StockLine] = Field(min_length=1)
    reason: Optional[str] = None


class StockLinesResult(BaseModel):
    lines: int
    movements: List[StockMovementResponse]
