import logging
import re
from typing import List, Optional

from storefront import settings
from storefront.api_client import ApiClient, normalize_list, unwrap
from storefront.cart import cart_branch_id, total_price
from storefront.errors import ApiError
from storefront.schemas import CartItem, CreateOrderData, Order, OrderItem

logger = logging.getLogger(__name__)

CATALOG_ID_RE = re.compile(r"^([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})", re.IGNORECASE)


def extract_catalog_id(cart_item_id: str) -> str:
    """
    Cart lines are keyed ``<catalog uuid>-<timestamp>``; the order needs the uuid.

    Ids without a leading uuid are passed through verbatim. The backend will
    most likely reject those as foreign keys.
    """
    match = CATALOG_ID_RE.match(cart_item_id)
    if match:
        return match.group(1)
    logger.warning("cart item id %r has no catalog uuid prefix, sending it verbatim", cart_item_id)
    return cart_item_id


def build_order_items(cart: List[CartItem]) -> List[OrderItem]:
    items = []
    for line in cart:
        catalog_id = extract_catalog_id(line.id)
        items.append(OrderItem(
            product_id=catalog_id if line.type == "product" else None,
            offer_id=catalog_id if line.type == "offer" else None,
            type=line.type,
            title_ar=line.title_ar,
            title_en=line.title_en,
            quantity=line.quantity,
            price_per_unit=line.totalPrice / line.quantity,
            total_price=line.totalPrice,
            size=line.size,
            size_data=line.sizeData,
            variants=line.variants,
            notes=line.notes,
        ))
    return items


def build_order(
    cart: List[CartItem],
    address_id: str,
    delivery_fee: float,
    notes: Optional[str] = None,
    payment_method: str = settings.PAYMENT_METHOD,
) -> CreateOrderData:
    subtotal = total_price(cart)
    return CreateOrderData(
        address_id=address_id,
        delivery_type="delivery",
        branch_id=cart_branch_id(cart),
        items=build_order_items(cart),
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total=subtotal + delivery_fee,
        notes=notes or "",
        payment_method=payment_method,
    )


class OrdersApi:
    def __init__(self, api: ApiClient):
        self.api = api

    async def create(self, data: CreateOrderData) -> Order:
        result = await self.api.post("/orders", data.model_dump(exclude_none=True))
        row = unwrap(result, "order")
        if not isinstance(row, dict) or "id" not in row:
            raise ApiError("Order data not found")
        return Order(**row)

    async def list(self) -> List[Order]:
        result = await self.api.get("/orders")
        return [Order(**row) for row in normalize_list(unwrap(result, "orders"))]

    async def get(self, order_id: str) -> Order:
        result = await self.api.get(f"/orders/{order_id}")
        return Order(**unwrap(result, "order"))

    async def cancel(self, order_id: str) -> None:
        await self.api.put(f"/orders/{order_id}/cancel")
