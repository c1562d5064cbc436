import logging

import pytest

from storefront.errors import ApiError
from storefront.orders import OrdersApi, build_order, extract_catalog_id

from conftest import PRODUCT_UUID, make_item


def test_extracts_uuid_from_timestamped_cart_id():
    assert extract_catalog_id(f"{PRODUCT_UUID}-1700000000000") == PRODUCT_UUID


def test_uuid_match_is_case_insensitive():
    upper = PRODUCT_UUID.upper()
    assert extract_catalog_id(f"{upper}-1") == upper


def test_non_uuid_id_passes_through_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="storefront.orders"):
        assert extract_catalog_id("p1-1700000000000") == "p1-1700000000000"
    assert "no catalog uuid prefix" in caplog.text


def test_build_order_totals_and_lines():
    cart = [
        make_item(id=f"{PRODUCT_UUID}-1", quantity=2, totalPrice=100.0, size="large", variants=["cheese"]),
        make_item(id=f"{PRODUCT_UUID}-2", type="offer", quantity=1, totalPrice=80.0),
    ]

    order = build_order(cart, "a1", delivery_fee=20.0, notes="ring twice")

    assert order.subtotal == 180.0
    assert order.total == 200.0
    assert order.branch_id == "b1"
    assert order.payment_method == "easykash"
    product, offer = order.items
    assert product.product_id == PRODUCT_UUID and product.offer_id is None
    assert product.price_per_unit == 50.0
    assert product.variants == ["cheese"]
    assert offer.offer_id == PRODUCT_UUID and offer.product_id is None


async def test_create_returns_order(api, backend):
    backend.routes[("POST", "/api/orders")] = (201, {"success": True, "data": {"id": "o1", "total": 200}})

    order = await OrdersApi(api).create(build_order([make_item()], "a1", 20.0))

    assert order.id == "o1"
    sent = backend.body("POST", "/api/orders")
    assert sent["address_id"] == "a1"
    assert sent["delivery_type"] == "delivery"


async def test_create_without_order_in_response_fails(api, backend):
    backend.routes[("POST", "/api/orders")] = (201, {"success": True, "data": None})

    with pytest.raises(ApiError, match="Order data not found"):
        await OrdersApi(api).create(build_order([make_item()], "a1", 20.0))


async def test_cancel_uses_cancel_endpoint(api, backend):
    backend.routes[("PUT", "/api/orders/o1/cancel")] = (200, {"success": True})

    await OrdersApi(api).cancel("o1")

    assert len(backend.calls("PUT", "/api/orders/o1/cancel")) == 1
