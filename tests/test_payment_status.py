"""Payment result polling after the gateway redirect."""

import pytest

from storefront.errors import NotFoundError
from storefront.orders import OrdersApi
from storefront.payment_status import (
    PaymentStatusPoller,
    PaymentTarget,
    resolve_target,
    status_message,
    whatsapp_link,
)
from storefront.payments import PaymentsApi
from storefront.schemas import Payment, PaymentStatus
from storefront.storage import PENDING_ORDER_KEY, PENDING_PAYMENT_KEY, MemoryStorage

from conftest import make_item, make_user

STATUS_PATH = "/api/payments/status/pay1"


def payment_body(status, **extra):
    data = {"id": "pay1", "order_id": "o1", "amount": 120.0, "currency": "EGP", "status": status}
    data.update(extra)
    return 200, {"success": True, "data": data}


@pytest.fixture
def poller_for(api, store):
    def build(target, **kwargs):
        return PaymentStatusPoller(PaymentsApi(api), OrdersApi(api), store, target, **kwargs)
    return build


def test_explicit_ids_win_over_stored_ones():
    storage = MemoryStorage({PENDING_ORDER_KEY: "o9", PENDING_PAYMENT_KEY: "pay9"})

    assert resolve_target("pay1", None, "o2", storage) == PaymentTarget("pay1", None)
    assert storage.get(PENDING_ORDER_KEY) == "o9"


def test_query_id_is_an_order_id():
    assert resolve_target(query_id="o2") == PaymentTarget(order_id="o2")


def test_stored_ids_are_consumed():
    storage = MemoryStorage({PENDING_ORDER_KEY: "o1", PENDING_PAYMENT_KEY: "pay1"})

    assert resolve_target(session_storage=storage) == PaymentTarget("pay1", "o1")
    assert len(storage) == 0
    assert resolve_target(session_storage=storage) is None


async def test_no_target_shows_loading_without_request(poller_for, backend):
    poller = poller_for(None)

    assert await poller.poll_once() is None
    assert await poller.watch() is None
    snapshot = poller.snapshot("en")

    assert snapshot["state"] == "loading"
    assert snapshot["message"] == "Loading order details..."
    assert backend.requests == []


async def test_completed_payment_clears_cart_once(poller_for, backend, store):
    store.add(make_item())
    backend.routes[("GET", STATUS_PATH)] = payment_body("completed")
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()
    store.add(make_item(id="p2"))
    await poller.poll_once()

    assert poller.is_terminal
    assert poller.cart_cleared
    assert len(store) == 1
    assert len(backend.calls("GET", STATUS_PATH)) == 1


async def test_failed_payment_cancels_order_once(poller_for, backend):
    backend.routes.update({
        ("GET", STATUS_PATH): payment_body("failed"),
        ("PUT", "/api/orders/o1/cancel"): (200, {"success": True}),
    })
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()
    await poller.poll_once()

    assert poller.order_cancelled
    assert len(backend.calls("PUT", "/api/orders/o1/cancel")) == 1


async def test_failed_cancel_is_not_retried(poller_for, backend):
    backend.routes.update({
        ("GET", STATUS_PATH): payment_body("cancelled"),
        ("PUT", "/api/orders/o1/cancel"): (500, {"success": False}),
    })
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()

    assert poller.snapshot("en")["state"] == "done"
    assert len(backend.calls("PUT", "/api/orders/o1/cancel")) == 1


async def test_watch_polls_until_terminal(poller_for, backend):
    backend.routes[("GET", STATUS_PATH)] = [
        payment_body("pending"),
        payment_body("processing"),
        payment_body("completed"),
    ]
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    poller = poller_for(PaymentTarget("pay1", "o1"), interval=3.0)
    payment = await poller.watch(sleep=fake_sleep)

    assert payment.status is PaymentStatus.completed
    assert sleeps == [3.0, 3.0]


async def test_lookup_by_order_when_payment_id_unknown(poller_for, backend):
    backend.routes[("GET", "/api/payments/order/o1")] = payment_body("processing")
    poller = poller_for(PaymentTarget(order_id="o1"))

    await poller.poll_once()

    assert poller.snapshot("en")["state"] == "polling"
    assert poller.snapshot("en")["message"] == "Processing your payment..."


async def test_status_error_is_reported(poller_for, backend):
    backend.routes[("GET", STATUS_PATH)] = (500, {"success": False})
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()

    snapshot = poller.snapshot("en")
    assert snapshot["state"] == "error"
    assert snapshot["message"] == "Failed to fetch payment status"


async def test_manual_cancel_offered_after_grace(poller_for, backend):
    backend.routes[("GET", STATUS_PATH)] = payment_body("pending")
    now = [100.0]
    poller = poller_for(PaymentTarget("pay1", "o1"), grace=10.0, clock=lambda: now[0])
    await poller.poll_once()

    assert not poller.cancel_available()
    now[0] = 110.0
    assert poller.cancel_available()
    assert poller.snapshot("en")["cancel_available"]


async def test_cancel_looks_up_payment_by_order(poller_for, backend):
    backend.routes.update({
        ("GET", "/api/payments/order/o1"): payment_body("pending"),
        ("POST", "/api/payments/cancel/pay1"): (200, {"success": True, "data": {"status": "cancelled"}}),
    })
    poller = poller_for(PaymentTarget(order_id="o1"))

    result = await poller.cancel()

    assert result == {"status": "cancelled"}
    assert poller.target == PaymentTarget("pay1", "o1")


async def test_cancel_without_payment_fails(poller_for):
    with pytest.raises(NotFoundError):
        await poller_for(None).cancel()


def test_status_messages_include_support_phone():
    assert "17533" in status_message("failed", "en")
    assert status_message("bogus", "en") == "Unknown payment status"
    assert status_message("completed", "ar") != status_message("completed", "en")


def test_whatsapp_link(monkeypatch):
    monkeypatch.setattr("storefront.settings.WHATSAPP_NUMBER", "201000000000")
    payment = Payment(id="pay1", order_id="abcdef123", amount=1250.5, status="completed")

    link = whatsapp_link(payment, make_user(), "en")

    assert link.startswith("https://wa.me/201000000000?text=")
    assert "abcdef" in link and "abcdef1" not in link
    assert "1%2C250.5" in link
    assert whatsapp_link(payment, None, "en") is None


@pytest.mark.parametrize("status, clears_cart, cancels_order", [
    ("completed", True, False),
    ("failed", False, True),
    ("cancelled", False, True),
    ("refunded", False, False),
])
async def test_terminal_status_stops_polling(poller_for, backend, store, status, clears_cart, cancels_order):
    store.add(make_item())
    backend.routes.update({
        ("GET", STATUS_PATH): payment_body(status),
        ("PUT", "/api/orders/o1/cancel"): (200, {"success": True}),
    })
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()
    await poller.poll_once()

    assert poller.is_terminal
    assert poller.snapshot("en")["state"] == "done"
    assert not poller.cancel_available()
    assert len(backend.calls("GET", STATUS_PATH)) == 1
    assert poller.cart_cleared is clears_cart
    assert len(store) == (0 if clears_cart else 1)
    assert len(backend.calls("PUT", "/api/orders/o1/cancel")) == (1 if cancels_order else 0)


async def test_failed_payment_without_order_id_cancels_target_order(poller_for, backend):
    backend.routes.update({
        ("GET", STATUS_PATH): payment_body("failed", order_id=None),
        ("PUT", "/api/orders/o1/cancel"): (200, {"success": True}),
    })
    poller = poller_for(PaymentTarget("pay1", "o1"))

    await poller.poll_once()

    assert poller.order_cancelled
    assert len(backend.calls("PUT", "/api/orders/o1/cancel")) == 1
