"""Cart reducers (pure, list in, list out) and the persisted ``CartStore``."""
import logging
import time
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from storefront import settings
from storefront.errors import ValidationError
from storefront.schemas import CartItem, CartView
from storefront.storage import CART_KEY, CacheEntry, Storage, is_expired

logger = logging.getLogger(__name__)

Cart = List[CartItem]
DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def source_id(item: CartItem) -> str:
    """Catalog id the line was added with (stored lines carry a timestamp suffix)."""
    return item.source_id or item.id


def identity_key(item: CartItem) -> Tuple:
    if item.type == "product":
        variants = tuple(sorted(item.variants)) if item.variants is not None else None
        return (item.type, source_id(item), item.size, variants)
    return (item.type, source_id(item))


def add_item(cart: Cart, item: CartItem, timestamp: Optional[int] = None) -> Cart:
    key = identity_key(item)
    for index, line in enumerate(cart):
        if identity_key(line) == key:
            merged = line.model_copy(update={
                "quantity": line.quantity + item.quantity,
                "totalPrice": line.totalPrice + item.totalPrice,
            })
            return cart[:index] + [merged] + cart[index + 1:]

    ts = timestamp if timestamp is not None else now_ms()
    new_line = item.model_copy(update={"id": f"{item.id}-{ts}", "source_id": source_id(item)})
    return cart + [new_line]


def remove_item(cart: Cart, item_id: str) -> Cart:
    return [line for line in cart if line.id != item_id]


def update_quantity(cart: Cart, item_id: str, quantity: int) -> Cart:
    if quantity <= 0:
        return remove_item(cart, item_id)

    updated = []
    for line in cart:
        if line.id == item_id:
            price_per_unit = line.totalPrice / line.quantity
            line = line.model_copy(update={"quantity": quantity, "totalPrice": price_per_unit * quantity})
        updated.append(line)
    return updated


def clear_cart(cart: Cart) -> Cart:
    return []


def total_price(cart: Cart) -> float:
    return sum(line.totalPrice for line in cart)


def total_items(cart: Cart) -> int:
    return sum(line.quantity for line in cart)


def cart_branch_id(cart: Cart) -> Optional[str]:
    # all lines belong to one branch; the first one speaks for the cart
    return cart[0].branch_id if cart else None


class CartStore:
    def __init__(
        self,
        storage: Storage,
        ttl_days: int = settings.CART_TTL_DAYS,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.ttl_ms = ttl_days * DAY_MS
        self.clock = clock
        self.items: Cart = []
        self.selected_branch_id: Optional[str] = None
        self.load()

    # ---------- persistence ----------
    def load(self) -> None:
        raw = self.storage.get(CART_KEY)
        self.items = []
        if not raw:
            return
        try:
            entry = CacheEntry(value=raw["cart"], written_at=float(raw["timestamp"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("discarding malformed stored cart")
            self.storage.remove(CART_KEY)
            return

        if is_expired(entry, self.clock(), self.ttl_ms):
            logger.info("stored cart expired, discarding")
            self.storage.remove(CART_KEY)
            return

        try:
            self.items = [CartItem(**line) for line in entry.value]
        except (SchemaError, TypeError):
            logger.exception("error loading stored cart")
            self.storage.remove(CART_KEY)
            self.items = []
            return
        self.selected_branch_id = raw.get("branch_id")

    def _save(self) -> None:
        self.storage.set(CART_KEY, {
            "cart": [line.model_dump(exclude_none=True) for line in self.items],
            "timestamp": self.clock(),
            "branch_id": self.selected_branch_id,
        })

    # ---------- mutations ----------
    def add(self, item: CartItem) -> None:
        if item.branch_id is None and self.selected_branch_id:
            item = item.model_copy(update={"branch_id": self.selected_branch_id})
        if item.branch_id is None:
            raise ValidationError("branch.required")
        current = cart_branch_id(self.items)
        if self.items and item.branch_id != current:
            raise ValidationError("branch.change_confirm")
        self.items = add_item(self.items, item, self.clock())
        self._save()

    def remove(self, item_id: str) -> None:
        self.items = remove_item(self.items, item_id)
        self._save()

    def update_quantity(self, item_id: str, quantity: int) -> None:
        self.items = update_quantity(self.items, item_id, quantity)
        self._save()

    def clear(self) -> None:
        self.items = clear_cart(self.items)
        self._save()

    def set_branch(self, branch_id: Optional[str]) -> None:
        self.selected_branch_id = branch_id
        self._save()

    def adopt_branch(self, branch_id: str) -> int:
        """Stamps `branch_id` on lines saved without one; returns how many changed."""
        stamped = 0
        for index, line in enumerate(self.items):
            if line.branch_id is None:
                self.items[index] = line.model_copy(update={"branch_id": branch_id})
                stamped += 1
        if stamped:
            self._save()
        return stamped

    # ---------- queries ----------
    def total_price(self) -> float:
        return total_price(self.items)

    def total_items(self) -> int:
        return total_items(self.items)

    def branch_id(self) -> Optional[str]:
        return cart_branch_id(self.items)

    def find(self, item_id: str) -> Optional[CartItem]:
        return next((line for line in self.items if line.id == item_id), None)

    def __len__(self) -> int:
        return len(self.items)

    def view(self) -> CartView:
        return CartView(
            items=self.items,
            total_price=self.total_price(),
            total_items=self.total_items(),
            branch_id=self.selected_branch_id,
        )
