"""Checkout: address selection, delivery fee, order placement and payment handoff."""
import logging
from typing import List, Optional

from storefront import settings
from storefront.addresses import AddressesApi, find_address, pick_default_address
from storefront.cart import CartStore
from storefront.delivery import DeliveryFeeResolver, FeeState, fee_inputs
from storefront.errors import ApiError, AuthError, DeliveryUnavailableError, PaymentError, ValidationError
from storefront.orders import OrdersApi, build_order
from storefront.payments import PaymentsApi, cancel_order_best_effort
from storefront.schemas import Address, InitiatePaymentData, PaymentRedirect, User
from storefront.storage import PENDING_ORDER_KEY, PENDING_PAYMENT_KEY, Storage

logger = logging.getLogger(__name__)


def payment_result_url(lang: str, order_id: str) -> str:
    return f"{settings.PUBLIC_URL}/{lang}/payment/result?id={order_id}"


def submission_gate(
    user: Optional[User],
    address_id: Optional[str],
    fee: FeeState,
    fee_is_current: bool = True,
) -> None:
    """Raises the first reason an order may not be placed yet."""
    if user is None:
        raise AuthError("auth.login_required")
    if not user.phone:
        raise ValidationError("auth.phone_required")
    if not address_id:
        raise ValidationError("address.required")
    if fee.error:
        raise DeliveryUnavailableError(detail=fee.error)
    if fee.result is None or fee.loading or not fee_is_current:
        raise ValidationError("delivery.calculating")


class Checkout:
    def __init__(self, cart: CartStore, resolver: DeliveryFeeResolver, session_storage: Storage):
        self.cart = cart
        self.resolver = resolver
        self.session_storage = session_storage
        self.addresses: List[Address] = []
        self.selected_address_id: Optional[str] = None
        self.notes = ""

    @property
    def selected_address(self) -> Optional[Address]:
        return next((a for a in self.addresses if a.id == self.selected_address_id), None)

    @property
    def fee(self) -> FeeState:
        return self.resolver.state

    def fee_is_current(self) -> bool:
        return self.fee.inputs is not None and self.fee.inputs == fee_inputs(self.selected_address, self.cart.items)

    def inputs_changed(self) -> None:
        self.resolver.invalidate()

    async def refresh_fee(self, lang: Optional[str] = None) -> FeeState:
        return await self.resolver.resolve(self.selected_address, list(self.cart.items), lang)

    async def ensure_fee(self, lang: Optional[str] = None) -> FeeState:
        if not self.fee_is_current():
            return await self.refresh_fee(lang)
        return self.fee

    async def load_addresses(self, addresses_api: AddressesApi, lang: Optional[str] = None) -> List[Address]:
        self.addresses = await addresses_api.list()
        if self.selected_address is None:
            default = pick_default_address(self.addresses)
            self.selected_address_id = default.id if default else None
            self.inputs_changed()
        await self.ensure_fee(lang)
        return self.addresses

    async def select_address(self, address_id: str, lang: Optional[str] = None) -> FeeState:
        find_address(self.addresses, address_id)
        self.selected_address_id = address_id
        self.inputs_changed()
        return await self.refresh_fee(lang)

    def check_gate(self, user: Optional[User]) -> None:
        submission_gate(user, self.selected_address_id, self.fee, self.fee_is_current())

    async def place_order(
        self,
        user: Optional[User],
        orders: OrdersApi,
        payments: PaymentsApi,
        lang: str = settings.DEFAULT_LANG,
        notes: Optional[str] = None,
    ) -> PaymentRedirect:
        if notes is not None:
            self.notes = notes
        self.check_gate(user)
        if len(self.cart) == 0:
            raise ValidationError("cart.empty")

        order_data = build_order(self.cart.items, self.selected_address_id, self.fee.result.fee, self.notes)
        try:
            order = await orders.create(order_data)
        except ApiError as e:
            raise ApiError(e.detail, e.status, key="order.failed") from e
        logger.info("order %s created for user %s, total %.2f", order.id, user.id, order.total or order_data.total)

        try:
            session = await payments.initiate(InitiatePaymentData(
                order_id=order.id,
                amount=order.total or order_data.total,
                customer_name=user.full_name or user.email or "Customer",
                customer_email=user.email,
                customer_phone=user.phone,
                currency=settings.PAYMENT_CURRENCY,
            ))
        except (PaymentError, ApiError) as e:
            logger.warning("payment initiation for order %s failed: %s", order.id, e)
            await cancel_order_best_effort(orders, order.id, "payment initiation failure")
            raise PaymentError("payment.initiate_failed", e.detail) from e

        self.session_storage.set(PENDING_PAYMENT_KEY, session.paymentId)
        self.session_storage.set(PENDING_ORDER_KEY, order.id)
        self.notes = ""
        return PaymentRedirect(
            order_id=order.id,
            payment_id=session.paymentId,
            payment_url=session.paymentUrl,
            return_url=payment_result_url(lang, order.id),
        )
