"""Payment result tracking after the shopper returns from the gateway."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from storefront import settings
from storefront.cart import CartStore
from storefront.errors import ApiError, NotFoundError, PaymentError, StorefrontError
from storefront.i18n import t
from storefront.orders import OrdersApi
from storefront.payments import PaymentsApi, cancel_order_best_effort
from storefront.schemas import TERMINAL_STATUSES, Payment, PaymentStatus, User
from storefront.storage import PENDING_ORDER_KEY, PENDING_PAYMENT_KEY, Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentTarget:
    payment_id: Optional[str] = None
    order_id: Optional[str] = None


def resolve_target(
    payment_id: Optional[str] = None,
    order_id: Optional[str] = None,
    query_id: Optional[str] = None,
    session_storage: Optional[Storage] = None,
) -> Optional[PaymentTarget]:
    """
    Picks what to poll: explicit ids, then the ``?id=`` order id from the
    return URL, then the ids stashed before the gateway redirect. The stashed
    ids are removed once read.
    """
    if payment_id or order_id:
        return PaymentTarget(payment_id, order_id)
    if query_id:
        return PaymentTarget(order_id=query_id)
    if session_storage is not None:
        stored_order = session_storage.pop(PENDING_ORDER_KEY)
        stored_payment = session_storage.pop(PENDING_PAYMENT_KEY)
        if stored_order or stored_payment:
            return PaymentTarget(stored_payment, stored_order)
    return None


def status_message(status: Optional[str], lang: Optional[str] = None) -> str:
    known = {s.value for s in PaymentStatus}
    key = f"payment.status.{status}" if status in known else "payment.status.unknown"
    return t(key, lang, support_phone=settings.SUPPORT_PHONE)


def _format_amount(amount: float) -> str:
    return f"{amount:,.2f}".rstrip("0").rstrip(".")


def whatsapp_link(payment: Optional[Payment], user: Optional[User], lang: Optional[str] = None) -> Optional[str]:
    if payment is None or user is None or not settings.WHATSAPP_NUMBER:
        return None
    message = t(
        "payment.whatsapp",
        lang,
        order=(payment.order_id or "N/A")[:6],
        name=user.full_name or user.email or "",
        amount=_format_amount(payment.amount),
        currency=payment.currency,
    )
    return f"https://wa.me/{settings.WHATSAPP_NUMBER}?text={quote(message)}"


class PaymentStatusPoller:
    def __init__(
        self,
        payments: PaymentsApi,
        orders: OrdersApi,
        cart: CartStore,
        target: Optional[PaymentTarget],
        interval: float = settings.PAYMENT_POLL_INTERVAL,
        grace: float = settings.PAYMENT_CANCEL_GRACE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.payments = payments
        self.orders = orders
        self.cart = cart
        self.target = target
        self.interval = interval
        self.grace = grace
        self.clock = clock
        self.started_at = clock()
        self.payment: Optional[Payment] = None
        self.error: Optional[StorefrontError] = None
        self.cart_cleared = False
        self.order_cancelled = False
        self._stopped = False

    @property
    def is_terminal(self) -> bool:
        return self.payment is not None and self.payment.status in TERMINAL_STATUSES

    async def _fetch(self) -> Optional[Payment]:
        if self.target.payment_id:
            return await self.payments.status(self.target.payment_id)
        return await self.payments.by_order(self.target.order_id)

    async def poll_once(self) -> Optional[Payment]:
        if self.target is None or self.is_terminal:
            return self.payment
        try:
            payment = await self._fetch()
        except (ApiError, PaymentError) as e:
            logger.info("payment status for %s unavailable: %s", self.target, e)
            self.error = e if isinstance(e, PaymentError) else PaymentError("payment.status_failed", e.detail)
            return None
        if payment is None:
            self.error = NotFoundError("payment.info_not_found")
            return None

        self.payment = payment
        self.error = None
        await self._settle(payment)
        return payment

    async def _settle(self, payment: Payment) -> None:
        if payment.status == PaymentStatus.completed and not self.cart_cleared:
            self.cart_cleared = True
            self.cart.clear()
            logger.info("payment %s completed, cart cleared", payment.id)

        order_id = payment.order_id or self.target.order_id
        if payment.status in (PaymentStatus.failed, PaymentStatus.cancelled) and order_id \
                and not self.order_cancelled:
            self.order_cancelled = True
            await cancel_order_best_effort(self.orders, order_id, f"payment {payment.status.value}")

    async def watch(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> Optional[Payment]:
        """Polls until a terminal status or ``stop()``. Without a target nothing is requested."""
        if self.target is None:
            return None
        while not self._stopped:
            await self.poll_once()
            if self.is_terminal:
                break
            await sleep(self.interval)
        return self.payment

    def stop(self) -> None:
        self._stopped = True

    def cancel_available(self, now: Optional[float] = None) -> bool:
        if self.target is None or self.is_terminal:
            return False
        elapsed = (now if now is not None else self.clock()) - self.started_at
        return elapsed >= self.grace

    async def cancel(self) -> dict:
        if self.target is None:
            raise NotFoundError("payment.info_not_found")
        payment_id = self.target.payment_id or (self.payment.id if self.payment else None)
        if not payment_id and self.target.order_id:
            found = await self.payments.by_order(self.target.order_id)
            payment_id = found.id if found else None
        if not payment_id:
            raise NotFoundError("payment.info_not_found")

        try:
            result = await self.payments.cancel(payment_id)
        except ApiError as e:
            raise PaymentError("payment.cancel_failed", e.detail) from e
        logger.info("payment %s cancelled by shopper", payment_id)
        self.target = PaymentTarget(payment_id, self.target.order_id)
        return result

    def snapshot(self, lang: Optional[str] = None, user: Optional[User] = None) -> Dict[str, Any]:
        if self.target is None:
            return {"state": "loading", "message": t("payment.loading_order", lang)}
        if self.payment is None and self.error is not None:
            return {"state": "error", "message": self.error.localized(lang)}
        if self.payment is None:
            return {"state": "loading", "message": t("payment.loading_order", lang)}
        status = self.payment.status.value
        return {
            "state": "done" if self.is_terminal else "polling",
            "status": status,
            "message": status_message(status, lang),
            "payment": self.payment.model_dump(mode="json"),
            "order_id": self.payment.order_id or self.target.order_id,
            "poll_interval": self.interval,
            "cancel_available": self.cancel_available(),
            "whatsapp_url": whatsapp_link(self.payment, user, lang) if status == "completed" else None,
        }
