# backend/schemas/variant.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List


class VariantCreate(BaseModel):
    parent_id: int
    name: str = Field(min_length=1)
    description: Optional[str] = None
    image_url: str = Field(min_length=1)
    display_order: int = 0
    active: bool = True


class VariantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: Optional[int] = None
    active: Optional[bool] = None


class VariantOut(BaseModel):
    id: int
    parent_id: int
    name: str
    description: Optional[str] = None
    image_url: str
    display_order: int
    active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VariantList(BaseModel):
    items: List[VariantOut]
    total: int


# Single entry of a reorder request
class VariantOrder(BaseModel):
    id: int
    display_order: int


class VariantReorder(BaseModel):
    orders: List[VariantOrder]
