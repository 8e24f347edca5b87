"""
Pytest fixtures for the back-office test suite.

Every test gets its own in-memory SQLite database (StaticPool keeps the single
connection alive for the whole test), a session bound to it, factories for
catalog rows and a TestClient with the store and the caller identity
overridden.
"""
import os

# Must be set before config/database are imported by the application
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import models.users, models.product, models.variant, models.composite  # noqa: F401,E401
import models.image, models.stock, models.log  # noqa: F401,E401
from models.composite import CompositeComponent
from models.image import ProductImage
from models.product import Product, ProductStatus
from models.users import User
from models.variant import ProductVariant
from utils.tokenJWT import get_current_user


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Row factories
# =============================================================================


@pytest.fixture
def make_product(db):
    """Insert a product row directly (no ledger entry for its opening stock)."""
    counter = {"n": 0}

    def _make(name=None, stock=0, category="Anillo", price=1000.0, code=None,
              status=ProductStatus.ACTIVE, visible=True, **extra):
        counter["n"] += 1
        product = Product(
            code=code or f"P-{counter['n']:04d}",
            name=name or f"Producto {counter['n']}",
            category=category,
            cost=price / 2,
            sale_price=price,
            currency="CRC",
            stock_quantity=stock,
            min_stock=extra.pop("min_stock", 1),
            status=status,
            show_in_storefront=visible,
            is_composite=extra.pop("is_composite", False),
            is_variant_parent=extra.pop("is_variant_parent", False),
            **extra,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_set(db, make_product):
    """A set row with its component relations: make_set("S1", [(p1, 2), (p2, 1)])."""

    def _make(name, components, category="Set", **extra):
        product_set = make_product(name=name, category=category, is_composite=True, **extra)
        for order, (component, qty) in enumerate(components):
            db.add(CompositeComponent(
                set_id=product_set.id, component_id=component.id, quantity=qty, display_order=order,
            ))
        db.commit()
        db.refresh(product_set)
        return product_set

    return _make


@pytest.fixture
def make_variant(db):
    def _make(parent, name, active=True, display_order=0, description=None):
        variant = ProductVariant(
            parent_id=parent.id, name=name, description=description,
            image_url=f"https://img.example.com/{parent.id}/{name.replace(' ', '-').lower()}.jpg",
            display_order=display_order, active=active,
        )
        db.add(variant)
        if not parent.is_variant_parent:
            parent.is_variant_parent = True
        db.commit()
        db.refresh(variant)
        return variant

    return _make


@pytest.fixture
def make_image(db):
    def _make(product, url, display_order=0, is_primary=False):
        image = ProductImage(product_id=product.id, url=url, display_order=display_order, is_primary=is_primary)
        db.add(image)
        db.commit()
        return image

    return _make


# =============================================================================
# HTTP client
# =============================================================================


@pytest.fixture
def admin(db):
    user = User(email="admin@joyeria.test", role="ADMIN", first_name="Ana", last_name="Mora")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def caller(admin):
    """Mutable holder for the identity the client acts as."""
    return {"user": admin}


@pytest.fixture
def client(db, caller):
    from main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: caller["user"]
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
