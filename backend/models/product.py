# backend/models/product.py
import enum
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


# Lifecycle states of a catalog item
class ProductStatus(str, enum.Enum):
    ACTIVE = "Active"
    DISCONTINUED = "Discontinued"
    OUT_OF_STOCK = "OutOfStock"


# Model Product
# A single catalog entry: a plain piece, a set (is_composite) whose stock is
# derived from its components, or a variant parent whose variants share its
# price and stock. stock_quantity is authoritative only for non-composite rows.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)

    description = Column(String)
    category = Column(String, index=True)
    supplier = Column(String)
    location = Column(String)

    # Prices, guarded by check constraints.
    cost = Column(Float, CheckConstraint("cost >= 0"), nullable=False, default=0)
    sale_price = Column(Float, CheckConstraint("sale_price >= 0"), nullable=False)
    currency = Column(String(3), nullable=False, default="CRC")

    # Raw stock counter; the conditional updates in services.stock_ledger keep it >= 0.
    stock_quantity = Column(Integer, CheckConstraint("stock_quantity >= 0"), nullable=False, default=0)
    min_stock = Column(Integer, CheckConstraint("min_stock >= 0"), nullable=False, default=5)

    status = Column(Enum(ProductStatus), nullable=False, default=ProductStatus.ACTIVE, index=True)
    show_in_storefront = Column(Boolean, nullable=False, default=True)

    is_composite = Column(Boolean, nullable=False, default=False)
    is_variant_parent = Column(Boolean, nullable=False, default=False)

    # Primary image URL, mirrored from the image directory.
    image_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    variants = relationship(
        "ProductVariant", back_populates="parent", cascade="all, delete-orphan",
        order_by="[ProductVariant.display_order, ProductVariant.id]",
    )
    components = relationship(
        "CompositeComponent", foreign_keys="CompositeComponent.set_id",
        back_populates="set_product", cascade="all, delete-orphan",
        order_by="[CompositeComponent.display_order, CompositeComponent.id]",
    )
    images = relationship(
        "ProductImage", back_populates="product", cascade="all, delete-orphan",
        order_by="ProductImage.display_order",
    )
