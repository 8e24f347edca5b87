import pytest

from config import settings
from exceptions import LimitExceededError, NotFoundError, ValidationError
from services import variants as variant_group

IMG = "https://img.example.com/v.jpg"


def test_first_variant_flags_parent(db, make_product):
    parent = make_product(stock=4)
    variant = variant_group.create_variant(db, parent.id, "  Oro rosa  ", "  Baño rosa ", IMG)

    db.refresh(parent)
    assert parent.is_variant_parent is True
    assert variant.name == "Oro rosa"
    assert variant.description == "Baño rosa"
    assert variant.active is True


def test_variant_does_not_copy_price_or_stock(db, make_product):
    parent = make_product(stock=4, price=25000)
    variant = variant_group.create_variant(db, parent.id, "Plata", None, IMG)
    assert not hasattr(variant, "stock_quantity")
    assert not hasattr(variant, "sale_price")
    assert variant.parent.sale_price == 25000


def test_create_variant_unknown_parent(db):
    with pytest.raises(NotFoundError):
        variant_group.create_variant(db, 404, "X", None, IMG)


def test_create_variant_requires_name(db, make_product):
    parent = make_product()
    with pytest.raises(ValidationError):
        variant_group.create_variant(db, parent.id, "   ", None, IMG)


def test_variant_limit(db, make_product, monkeypatch):
    monkeypatch.setattr(settings, "MAX_VARIANTS_PER_PRODUCT", 2)
    parent = make_product()
    variant_group.create_variant(db, parent.id, "A", None, IMG)
    variant_group.create_variant(db, parent.id, "B", None, IMG)

    with pytest.raises(LimitExceededError):
        variant_group.create_variant(db, parent.id, "C", None, IMG)
    assert variant_group.count_variants(db, parent.id) == 2


@pytest.mark.parametrize("url", ["", "not a url", "ftp://img.example.com/a.jpg", "javascript:alert(1)"])
def test_invalid_image_urls(url):
    with pytest.raises(ValidationError):
        variant_group.validate_image_url(url)


def test_image_host_allowlist(monkeypatch):
    monkeypatch.setattr(settings, "IMAGE_URL_ALLOWED_HOSTS", ["cdn.example.com"])
    assert variant_group.validate_image_url("https://res.cdn.example.com/a.jpg") == "https://res.cdn.example.com/a.jpg"
    with pytest.raises(ValidationError):
        variant_group.validate_image_url("http://cdn.example.com/a.jpg")
    with pytest.raises(ValidationError):
        variant_group.validate_image_url("https://evil-cdn.example.org/a.jpg")


def test_list_variants_order_and_active_filter(db, make_product, make_variant):
    parent = make_product()
    c = make_variant(parent, "C", display_order=2)
    a = make_variant(parent, "A", display_order=0)
    b = make_variant(parent, "B", display_order=1, active=False)

    assert [v.id for v in variant_group.list_variants(db, parent.id)] == [a.id, b.id, c.id]
    assert [v.id for v in variant_group.list_variants(db, parent.id, only_active=True)] == [a.id, c.id]


def test_active_variants_by_parent(db, make_product, make_variant):
    p1 = make_product()
    p2 = make_product()
    make_variant(p1, "A")
    make_variant(p1, "B", active=False)
    make_variant(p2, "C")

    grouped = variant_group.active_variants_by_parent(db, [p1.id, p2.id])
    assert {k: [v.name for v in vs] for k, vs in grouped.items()} == {p1.id: ["A"], p2.id: ["C"]}


def test_remove_last_variant_clears_flag(db, make_product):
    parent = make_product()
    v1 = variant_group.create_variant(db, parent.id, "A", None, IMG)
    v2 = variant_group.create_variant(db, parent.id, "B", None, IMG)

    assert variant_group.remove_variant(db, v1.id) == parent.id
    db.refresh(parent)
    assert parent.is_variant_parent is True

    variant_group.remove_variant(db, v2.id)
    db.refresh(parent)
    assert parent.is_variant_parent is False

    with pytest.raises(NotFoundError):
        variant_group.get_variant(db, v2.id)


def test_update_variant(db, make_product, make_variant):
    parent = make_product()
    v = make_variant(parent, "A")

    updated = variant_group.update_variant(db, v.id, {"name": " Nuevo ", "description": "  ", "active": False})
    assert updated.name == "Nuevo"
    assert updated.description is None
    assert updated.active is False

    with pytest.raises(ValidationError):
        variant_group.update_variant(db, v.id, {"image_url": "ftp://x/y.jpg"})


def test_reorder_variants(db, make_product, make_variant):
    parent = make_product()
    a = make_variant(parent, "A", display_order=0)
    b = make_variant(parent, "B", display_order=1)

    result = variant_group.reorder_variants(db, [{"id": a.id, "display_order": 5}, {"id": b.id, "display_order": 1}])
    assert [v.id for v in result] == [b.id, a.id]


def test_reorder_rejects_mixed_parents(db, make_product, make_variant):
    a = make_variant(make_product(), "A")
    b = make_variant(make_product(), "B")
    with pytest.raises(ValidationError):
        variant_group.reorder_variants(db, [{"id": a.id, "display_order": 0}, {"id": b.id, "display_order": 1}])


def test_reorder_unknown_variant(db, make_product, make_variant):
    a = make_variant(make_product(), "A")
    with pytest.raises(NotFoundError):
        variant_group.reorder_variants(db, [{"id": a.id, "display_order": 0}, {"id": 999, "display_order": 1}])
