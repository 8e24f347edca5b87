# backend/services/stock_resolver.py
"""Sellable availability of products and validation of set composition.

A set (``is_composite``) never owns stock: its availability is recomputed on
every call from the current state of its components, so it cannot go stale.
"""
import logging
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import transaction
from exceptions import (
    CycleDetectedError,
    DuplicateComponentError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from models.composite import CompositeComponent
from models.product import Product, ProductStatus

logger = logging.getLogger(__name__)


def get_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(f"Product {product_id} not found", field="product_id")
    return product


def load_components(db: Session, set_id: int) -> List[Tuple[CompositeComponent, Product]]:
    """Component rows of a set joined with each component's current state."""
    return (
        db.query(CompositeComponent, Product)
        .join(Product, Product.id == CompositeComponent.component_id)
        .filter(CompositeComponent.set_id == set_id)
        .order_by(CompositeComponent.display_order.asc(), CompositeComponent.id.asc())
        .all()
    )


def contribution(db: Session, relation: CompositeComponent, component: Product, _depth: int = 0) -> int:
    """Whole sets a single component can supply on its own."""
    if component.status != ProductStatus.ACTIVE:
        return 0
    if component.is_composite:
        stock = _resolve(db, component, _depth + 1)
    else:
        stock = component.stock_quantity or 0
    return max(stock, 0) // relation.quantity


def _resolve(db: Session, product: Product, depth: int) -> int:
    if not product.is_composite:
        return product.stock_quantity or 0
    if depth > settings.MAX_COMPOSITE_DEPTH:
        # Only reachable with a cycle planted behind the validation below
        logger.error("Composite depth limit hit while resolving product %s", product.id)
        return 0

    components = load_components(db, product.id)
    if not components:
        return 0
    # Bottleneck: the scarcest component caps the set
    return min(contribution(db, rel, comp, depth) for rel, comp in components)


def resolve_availability(db: Session, product_id: int) -> int:
    return _resolve(db, get_product(db, product_id), 0)


def availability_of(db: Session, product: Product) -> int:
    """Same as resolve_availability for an already loaded row."""
    return _resolve(db, product, 0)


def bulk_availability(db: Session, sets: Iterable[Product]) -> Dict[int, int]:
    """Availability of many sets, loading their component lists in one query."""
    sets = [s for s in sets if s.is_composite]
    if not sets:
        return {}

    rows = (
        db.query(CompositeComponent, Product)
        .join(Product, Product.id == CompositeComponent.component_id)
        .filter(CompositeComponent.set_id.in_([s.id for s in sets]))
        .all()
    )
    by_set: Dict[int, List[Tuple[CompositeComponent, Product]]] = {}
    for rel, comp in rows:
        by_set.setdefault(rel.set_id, []).append((rel, comp))

    result = {}
    for s in sets:
        components = by_set.get(s.id)
        result[s.id] = min(contribution(db, rel, comp) for rel, comp in components) if components else 0
    return result


def validate_sufficiency(db: Session, product_id: int, requested_quantity: int) -> bool:
    return resolve_availability(db, product_id) >= requested_quantity


def count_components(db: Session, set_id: int) -> int:
    return db.query(func.count(CompositeComponent.id)).filter(CompositeComponent.set_id == set_id).scalar() or 0


def _reaches(db: Session, start_id: int, target_id: int) -> bool:
    """True when target_id is start_id or sits anywhere below it in the composite graph.

    Walks level by level with a visited set. A graph deeper than
    MAX_COMPOSITE_DEPTH is reported as reaching the target.
    """
    if start_id == target_id:
        return True

    visited = {start_id}
    frontier = [start_id]
    depth = 0
    while frontier:
        depth += 1
        if depth > settings.MAX_COMPOSITE_DEPTH:
            return True
        children = [
            row[0] for row in
            db.query(CompositeComponent.component_id)
            .filter(CompositeComponent.set_id.in_(frontier))
            .all()
        ]
        if target_id in children:
            return True
        frontier = [c for c in set(children) if c not in visited]
        visited.update(frontier)
    return False


def add_component(
    db: Session, set_id: int, component_id: int, quantity: int = 1, display_order: int = 0
) -> CompositeComponent:
    if set_id == component_id:
        raise ValidationError("A set cannot contain itself", field="component_id")
    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be positive", field="quantity")

    product_set = db.query(Product).filter(Product.id == set_id).first()
    if not product_set:
        raise NotFoundError(f"Set product {set_id} not found", field="set_id")
    component = db.query(Product).filter(Product.id == component_id).first()
    if not component:
        raise NotFoundError(f"Component product {component_id} not found", field="component_id")

    existing = (
        db.query(CompositeComponent)
        .filter(CompositeComponent.set_id == set_id, CompositeComponent.component_id == component_id)
        .first()
    )
    if existing:
        raise DuplicateComponentError(
            "Component already exists in this set", field="component_id",
            context={"relation_id": existing.id},
        )

    if count_components(db, set_id) >= settings.MAX_COMPONENTS_PER_SET:
        raise LimitExceededError(
            f"Maximum component limit reached ({settings.MAX_COMPONENTS_PER_SET} per set)",
            field="set_id",
        )

    # The new edge set -> component closes a cycle iff component already reaches set
    if _reaches(db, component_id, set_id):
        raise CycleDetectedError(
            "Circular reference detected: component set contains the parent set",
            field="component_id", context={"set_id": set_id, "component_id": component_id},
        )

    with transaction(db):
        relation = CompositeComponent(
            set_id=set_id, component_id=component_id,
            quantity=quantity, display_order=display_order or 0,
        )
        db.add(relation)
        if not product_set.is_composite:
            product_set.is_composite = True
    db.refresh(relation)

    logger.info("Added component %s x%s to set %s", component_id, quantity, set_id)
    return relation


def get_component(db: Session, relation_id: int) -> CompositeComponent:
    relation = db.query(CompositeComponent).filter(CompositeComponent.id == relation_id).first()
    if not relation:
        raise NotFoundError(f"Component {relation_id} not found", field="relation_id")
    return relation


def update_component_quantity(db: Session, relation_id: int, quantity: int) -> CompositeComponent:
    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be positive", field="quantity")
    relation = get_component(db, relation_id)
    with transaction(db):
        relation.quantity = quantity
    db.refresh(relation)
    return relation


def remove_component(db: Session, relation_id: int) -> int:
    """Delete a component relation; returns the owning set id."""
    relation = get_component(db, relation_id)
    set_id = relation.set_id

    with transaction(db):
        db.delete(relation)
        db.flush()
        if count_components(db, set_id) == 0:
            product_set = db.query(Product).filter(Product.id == set_id).first()
            if product_set:
                product_set.is_composite = False

    logger.info("Removed component relation %s from set %s", relation_id, set_id)
    return set_id


def sets_containing(db: Session, product_id: int) -> List[Tuple[CompositeComponent, Product]]:
    """Sets that list product_id as a direct component."""
    return (
        db.query(CompositeComponent, Product)
        .join(Product, Product.id == CompositeComponent.set_id)
        .filter(CompositeComponent.component_id == product_id)
        .order_by(Product.id.asc())
        .all()
    )


def describe_components(db: Session, set_id: int) -> List[dict]:
    return [
        {
            "id": rel.id, "set_id": rel.set_id, "component_id": rel.component_id,
            "quantity": rel.quantity, "display_order": rel.display_order,
            "code": comp.code, "name": comp.name, "category": comp.category,
            "sale_price": comp.sale_price, "stock_quantity": comp.stock_quantity,
            "status": comp.status, "contributes": contribution(db, rel, comp),
        }
        for rel, comp in load_components(db, set_id)
    ]
