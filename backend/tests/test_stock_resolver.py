import pytest

from config import settings
from exceptions import (
    ConflictError,
    CycleDetectedError,
    DuplicateComponentError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from models.product import Product, ProductStatus
from services import stock_resolver


def test_plain_product_returns_raw_counter(db, make_product):
    p = make_product(stock=7)
    assert stock_resolver.resolve_availability(db, p.id) == 7


def test_set_availability_is_the_bottleneck(db, make_product, make_set):
    p1 = make_product(stock=10)
    p2 = make_product(stock=5)
    s1 = make_set("S1", [(p1, 2), (p2, 1)])

    assert stock_resolver.resolve_availability(db, s1.id) == min(10 // 2, 5 // 1) == 5

    p2.stock_quantity = 3
    db.commit()
    # Recomputed on every call, never cached
    assert stock_resolver.resolve_availability(db, s1.id) == 3


def test_inactive_component_contributes_nothing(db, make_product, make_set):
    p1 = make_product(stock=10)
    p2 = make_product(stock=10, status=ProductStatus.DISCONTINUED)
    s = make_set("S", [(p1, 1), (p2, 1)])
    assert stock_resolver.resolve_availability(db, s.id) == 0


def test_set_without_components_is_unavailable(db, make_product):
    s = make_product(name="Empty set", stock=50, is_composite=True)
    assert stock_resolver.resolve_availability(db, s.id) == 0


def test_nested_set_availability(db, make_product, make_set):
    p1 = make_product(stock=10)
    p2 = make_product(stock=5)
    p3 = make_product(stock=8)
    inner = make_set("Inner", [(p1, 2), (p2, 1)])
    outer = make_set("Outer", [(inner, 2), (p3, 1)])
    # inner = 5, so outer = min(5 // 2, 8) = 2
    assert stock_resolver.resolve_availability(db, outer.id) == 2


def test_validate_sufficiency(db, make_product, make_set):
    p1 = make_product(stock=10)
    p2 = make_product(stock=5)
    s1 = make_set("S1", [(p1, 2), (p2, 1)])
    assert stock_resolver.validate_sufficiency(db, s1.id, 5) is True
    assert stock_resolver.validate_sufficiency(db, s1.id, 6) is False


def test_resolve_missing_product(db):
    with pytest.raises(NotFoundError):
        stock_resolver.resolve_availability(db, 999)


def test_bulk_availability_matches_single_resolution(db, make_product, make_set):
    p1 = make_product(stock=10)
    p2 = make_product(stock=5)
    p3 = make_product(stock=1)
    a = make_set("A", [(p1, 2), (p2, 1)])
    b = make_set("B", [(p2, 2), (p3, 1)])
    plain = make_product(stock=4)

    result = stock_resolver.bulk_availability(db, [a, b, plain])
    assert result == {a.id: 5, b.id: 1}


# ---------------------------------------------------------------------------
# add_component / remove_component
# ---------------------------------------------------------------------------


def test_add_component_marks_the_set(db, make_product):
    s = make_product(name="Set")
    p = make_product(stock=3)

    relation = stock_resolver.add_component(db, s.id, p.id, 2)

    db.refresh(s)
    assert s.is_composite is True
    assert relation.quantity == 2
    assert stock_resolver.resolve_availability(db, s.id) == 1


def test_add_component_rejects_self_reference(db, make_product):
    p = make_product()
    with pytest.raises(ValidationError) as exc:
        stock_resolver.add_component(db, p.id, p.id, 1)
    assert exc.value.field == "component_id"


@pytest.mark.parametrize("quantity", [0, -1])
def test_add_component_rejects_non_positive_quantity(db, make_product, quantity):
    s = make_product()
    p = make_product()
    with pytest.raises(ValidationError):
        stock_resolver.add_component(db, s.id, p.id, quantity)
    assert db.query(Product).filter(Product.id == s.id).one().is_composite is False


def test_add_component_rejects_duplicates(db, make_product, make_set):
    p = make_product()
    s = make_set("S", [(p, 1)])
    with pytest.raises(DuplicateComponentError) as exc:
        stock_resolver.add_component(db, s.id, p.id, 3)
    assert isinstance(exc.value, ConflictError)


def test_add_component_rejects_one_hop_cycle(db, make_product, make_set):
    b = make_product(name="B", stock=4)
    a = make_set("A", [(b, 1)])
    with pytest.raises(ConflictError):
        stock_resolver.add_component(db, b.id, a.id, 1)


def test_add_component_rejects_transitive_cycle(db, make_product, make_set):
    leaf = make_product(stock=9)
    c = make_set("C", [(leaf, 1)])
    b = make_set("B", [(c, 1)])
    a = make_set("A", [(b, 1)])

    with pytest.raises(CycleDetectedError):
        stock_resolver.add_component(db, c.id, a.id, 1)


def test_add_component_allows_shared_component(db, make_product, make_set):
    # Diamond, not a cycle: A -> B -> P and A -> P
    p = make_product(stock=6)
    b = make_set("B", [(p, 1)])
    a = make_set("A", [(b, 1)])
    stock_resolver.add_component(db, a.id, p.id, 1)
    assert stock_resolver.resolve_availability(db, a.id) == 6


def test_add_component_enforces_limit(db, make_product, monkeypatch):
    monkeypatch.setattr(settings, "MAX_COMPONENTS_PER_SET", 2)
    s = make_product(name="Set")
    for _ in range(2):
        stock_resolver.add_component(db, s.id, make_product().id, 1)

    with pytest.raises(LimitExceededError):
        stock_resolver.add_component(db, s.id, make_product().id, 1)
    assert stock_resolver.count_components(db, s.id) == 2


def test_add_component_unknown_products(db, make_product):
    p = make_product()
    with pytest.raises(NotFoundError):
        stock_resolver.add_component(db, 999, p.id, 1)
    with pytest.raises(NotFoundError):
        stock_resolver.add_component(db, p.id, 999, 1)


def test_remove_last_component_clears_flag(db, make_product, make_set):
    p1 = make_product()
    p2 = make_product()
    s = make_set("S", [(p1, 1), (p2, 1)])
    relations = [rel for rel, _ in stock_resolver.load_components(db, s.id)]

    assert stock_resolver.remove_component(db, relations[0].id) == s.id
    db.refresh(s)
    assert s.is_composite is True

    stock_resolver.remove_component(db, relations[1].id)
    db.refresh(s)
    assert s.is_composite is False


def test_update_component_quantity(db, make_product, make_set):
    p = make_product(stock=9)
    s = make_set("S", [(p, 1)])
    rel, _ = stock_resolver.load_components(db, s.id)[0]

    stock_resolver.update_component_quantity(db, rel.id, 3)
    assert stock_resolver.resolve_availability(db, s.id) == 3

    with pytest.raises(ValidationError):
        stock_resolver.update_component_quantity(db, rel.id, 0)


def test_sets_containing(db, make_product, make_set):
    p = make_product()
    s1 = make_set("S1", [(p, 1)])
    s2 = make_set("S2", [(p, 2)])
    make_set("S3", [(make_product(), 1)])

    found = [(s.id, rel.quantity) for rel, s in stock_resolver.sets_containing(db, p.id)]
    assert found == [(s1.id, 1), (s2.id, 2)]


def test_describe_components(db, make_product, make_set):
    p1 = make_product(name="Collar", stock=7)
    p2 = make_product(name="Aretes", stock=2, status=ProductStatus.OUT_OF_STOCK)
    s = make_set("Set", [(p1, 2), (p2, 1)])

    rows = stock_resolver.describe_components(db, s.id)
    assert [r["name"] for r in rows] == ["Collar", "Aretes"]
    assert [r["contributes"] for r in rows] == [3, 0]
