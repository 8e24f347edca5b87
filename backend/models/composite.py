# backend/models/composite.py
from sqlalchemy import Column, Integer, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base


# Membership of a component product inside a set, with the number of
# component units consumed by one unit of the set.
class CompositeComponent(Base):
    __tablename__ = "composite_components"

    id = Column(Integer, primary_key=True, index=True)
    set_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    component_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, CheckConstraint("quantity >= 1"), nullable=False, default=1)
    display_order = Column(Integer, nullable=False, default=0)

    set_product = relationship("Product", foreign_keys=[set_id], back_populates="components")
    component = relationship("Product", foreign_keys=[component_id])

    __table_args__ = (
        UniqueConstraint("set_id", "component_id", name="uq_composite_set_component"),
        CheckConstraint("set_id <> component_id", name="ck_composite_not_self"),
    )
