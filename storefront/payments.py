import logging
from typing import Optional

from pydantic import ValidationError as SchemaError

from storefront.api_client import ApiClient, unwrap
from storefront.errors import ApiError, PaymentError
from storefront.orders import OrdersApi
from storefront.schemas import InitiatePaymentData, Payment, PaymentSession

logger = logging.getLogger(__name__)


class PaymentsApi:
    def __init__(self, api: ApiClient):
        self.api = api

    async def initiate(self, data: InitiatePaymentData) -> PaymentSession:
        try:
            result = await self.api.post("/payments/initiate", data.model_dump(exclude_none=True))
        except ApiError as e:
            raise PaymentError("payment.initiate_failed", e.detail) from e
        session = unwrap(result)
        if not isinstance(session, dict) or not session.get("paymentUrl") or not session.get("paymentId"):
            raise PaymentError("payment.initiate_failed")
        return PaymentSession(**session)

    async def status(self, payment_id: str) -> Payment:
        return self._payment(await self.api.get(f"/payments/status/{payment_id}"))

    async def by_order(self, order_id: str) -> Optional[Payment]:
        try:
            result = await self.api.get(f"/payments/order/{order_id}")
        except ApiError as e:
            if e.status == 404:
                return None
            raise
        return self._payment(result)

    async def cancel(self, payment_id: str) -> dict:
        result = await self.api.post(f"/payments/cancel/{payment_id}")
        return unwrap(result) if isinstance(unwrap(result), dict) else {}

    @staticmethod
    def _payment(result) -> Payment:
        data = unwrap(result, "payment")
        if not isinstance(data, dict):
            raise PaymentError("payment.status_failed")
        try:
            return Payment(**data)
        except SchemaError as e:
            raise PaymentError("payment.status_failed") from e


async def cancel_order_best_effort(orders: OrdersApi, order_id: Optional[str], reason: str) -> bool:
    """
    Compensating cancel for an order whose payment never happened.

    Never raises. A failed cancel leaves a created-but-unpaid order behind, so
    it is logged at ERROR with the order id for follow-up.
    """
    if not order_id:
        return False
    try:
        await orders.cancel(order_id)
    except ApiError as e:
        logger.error("ORPHANED ORDER %s: auto-cancel after %s failed: %s", order_id, reason, e)
        return False
    logger.info("order %s cancelled after %s", order_id, reason)
    return True
