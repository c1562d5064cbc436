"""Cart reducers and the persisted cart store."""

import pytest

from storefront.cart import (
    DAY_MS,
    CartStore,
    add_item,
    cart_branch_id,
    identity_key,
    remove_item,
    total_items,
    total_price,
    update_quantity,
)
from storefront.errors import ValidationError
from storefront.storage import CART_KEY, MemoryStorage

from conftest import FakeClock, make_item


def test_update_quantity_rescales_total_price():
    """A line of 2 at 100 becomes 3 at 150."""
    cart = [make_item(quantity=2, totalPrice=100.0)]

    updated = update_quantity(cart, "p1", 3)

    assert updated[0].quantity == 3
    assert updated[0].totalPrice == 150.0
    assert cart[0].quantity == 2


@pytest.mark.parametrize("quantity", [0, -1])
def test_update_quantity_to_zero_or_less_removes_line(quantity):
    cart = [make_item(), make_item(id="p2")]
    assert update_quantity(cart, "p1", quantity) == remove_item(cart, "p1")


def test_update_quantity_unknown_id_is_noop():
    cart = [make_item()]
    assert update_quantity(cart, "missing", 5) == cart


def test_add_item_appends_with_timestamped_id():
    cart = add_item([], make_item(), timestamp=1234)

    assert len(cart) == 1
    assert cart[0].id == "p1-1234"
    assert cart[0].source_id == "p1"


def test_add_same_product_merges_quantity_and_price():
    cart = add_item([], make_item(size="large", variants=["cheese", "bacon"]), timestamp=1)
    cart = add_item(cart, make_item(size="large", variants=["bacon", "cheese"], quantity=2, totalPrice=100.0), 2)

    assert len(cart) == 1
    assert cart[0].quantity == 3
    assert cart[0].totalPrice == 150.0
    assert cart[0].id == "p1-1"


def test_add_product_with_different_size_appends():
    cart = add_item([], make_item(size="small"), timestamp=1)
    cart = add_item(cart, make_item(size="large", totalPrice=70.0), timestamp=2)

    assert [line.id for line in cart] == ["p1-1", "p1-2"]


def test_offers_merge_by_id_only():
    offer = make_item(id="o1", type="offer", totalPrice=200.0)
    cart = add_item([], offer, timestamp=1)
    cart = add_item(cart, offer.model_copy(update={"notes": "no onions"}), timestamp=2)

    assert len(cart) == 1
    assert cart[0].quantity == 2
    assert identity_key(cart[0]) == ("offer", "o1")


def test_totals_and_branch():
    cart = [make_item(quantity=2, totalPrice=100.0), make_item(id="p2", quantity=1, totalPrice=35.5)]

    assert total_price(cart) == 135.5
    assert total_items(cart) == 3
    assert cart_branch_id(cart) == "b1"
    assert cart_branch_id([]) is None


def test_store_persists_and_reloads(store, clock):
    store.add(make_item())
    store.set_branch("b1")

    reloaded = CartStore(store.storage, clock=clock)

    assert [line.id for line in reloaded.items] == [store.items[0].id]
    assert reloaded.selected_branch_id == "b1"
    assert store.storage.get(CART_KEY)["timestamp"] == clock.now


def test_store_discards_expired_cart(clock):
    storage = MemoryStorage()
    CartStore(storage, clock=clock).add(make_item())

    later = FakeClock(clock.now + 7 * DAY_MS + 1)
    reloaded = CartStore(storage, clock=later)

    assert reloaded.items == []
    assert storage.get(CART_KEY) is None


def test_store_keeps_cart_at_exact_ttl(clock):
    storage = MemoryStorage()
    CartStore(storage, clock=clock).add(make_item())

    reloaded = CartStore(storage, clock=FakeClock(clock.now + 7 * DAY_MS))

    assert len(reloaded) == 1


@pytest.mark.parametrize("raw", [
    {"cart": [{"id": "x"}], "timestamp": 1_700_000_000_000},
    {"cart": [], "timestamp": "yesterday"},
    {"items": []},
])
def test_store_discards_malformed_cart(raw, clock):
    storage = MemoryStorage({CART_KEY: raw})

    store = CartStore(storage, clock=clock)

    assert store.items == []
    assert storage.get(CART_KEY) is None


def test_store_stamps_selected_branch_on_new_lines(store):
    store.set_branch("b7")
    store.add(make_item(branch_id=None))

    assert store.items[0].branch_id == "b7"
    assert store.branch_id() == "b7"


def test_store_rejects_item_from_another_branch(store):
    store.add(make_item(branch_id="b1"))

    with pytest.raises(ValidationError) as exc:
        store.add(make_item(id="p2", branch_id="b2"))

    assert exc.value.key == "branch.change_confirm"
    assert len(store) == 1


def test_store_view(store):
    store.add(make_item(quantity=2, totalPrice=100.0))

    view = store.view()

    assert view.total_price == 100.0
    assert view.total_items == 2


def test_store_refuses_line_without_any_branch(store):
    with pytest.raises(ValidationError) as exc:
        store.add(make_item(branch_id=None))

    assert exc.value.key == "branch.required"
    assert len(store) == 0


def test_totals_follow_every_change(store):
    """After each add, merge, update and remove the cart total is the sum of its lines."""
    burger = make_item(quantity=2, totalPrice=100.0)
    fries = make_item(id="p2", title_en="Fries", quantity=1, totalPrice=30.0)
    combo = make_item(id="o1", type="offer", title_en="Combo", quantity=1, totalPrice=120.0)

    def check(expected_total):
        assert store.total_price() == pytest.approx(expected_total)
        assert store.total_price() == pytest.approx(sum(line.totalPrice for line in store.items))
        assert store.total_items() == sum(line.quantity for line in store.items)

    store.add(burger)
    check(100.0)
    store.add(fries)
    check(130.0)
    store.add(burger)
    check(230.0)
    burger_line = store.items[0]
    assert (burger_line.quantity, burger_line.totalPrice) == (4, 200.0)

    store.update_quantity(burger_line.id, 1)
    check(80.0)
    assert store.items[0].totalPrice == pytest.approx(50.0)

    store.add(combo)
    check(200.0)
    store.remove(store.items[1].id)
    check(170.0)
    store.update_quantity(store.items[-1].id, 3)
    check(410.0)
    store.update_quantity(store.items[0].id, 0)
    check(360.0)
    assert [line.title_en for line in store.items] == ["Combo"]
