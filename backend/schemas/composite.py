# backend/schemas/composite.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List

from models.product import ProductStatus


class ComponentCreate(BaseModel):
    set_id: int
    component_id: int
    quantity: int = 1
    display_order: int = 0


class ComponentQuantityUpdate(BaseModel):
    quantity: int


class ComponentOut(BaseModel):
    id: int
    set_id: int
    component_id: int
    quantity: int
    display_order: int

    model_config = ConfigDict(from_attributes=True)


# Component row joined with the component's current state
class ComponentDetail(ComponentOut):
    code: str
    name: str
    category: Optional[str] = None
    sale_price: float
    stock_quantity: int
    status: ProductStatus
    # floor(stock / quantity), or 0 when the component is not Active
    contributes: int


class ComponentList(BaseModel):
    items: List[ComponentDetail]
    total: int
    available: int


class StockCheck(BaseModel):
    product_id: int
    available: int
    requested: int = Field(ge=1)
    sufficient: bool
