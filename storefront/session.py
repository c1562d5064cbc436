import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import httpx

from storefront import settings
from storefront.addresses import AddressesApi
from storefront.api_client import ApiClient, SupabaseClient
from storefront.auth import AuthApi, AuthSession
from storefront.cart import CartStore
from storefront.catalog import CatalogApi
from storefront.checkout import Checkout
from storefront.delivery import DeliveryApi, DeliveryFeeResolver
from storefront.orders import OrdersApi
from storefront.payment_status import PaymentStatusPoller, resolve_target
from storefront.payments import PaymentsApi
from storefront.schemas import User
from storefront.storage import JsonFileStorage, MemoryStorage, Storage

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class ShopperSession:
    def __init__(
        self,
        session_id: str,
        http: httpx.AsyncClient,
        local_storage: Storage,
        session_storage: Optional[Storage] = None,
    ):
        self.id = session_id
        self.api = ApiClient(http, settings.API_URL)
        self.supabase = SupabaseClient(http, settings.SUPABASE_URL, settings.SUPABASE_KEY)
        self.session_storage = session_storage or MemoryStorage()
        self.cart = CartStore(local_storage)
        self.user: Optional[User] = None

        self.auth = AuthApi(self.api, self.supabase)
        self.addresses = AddressesApi(self.api)
        self.orders = OrdersApi(self.api)
        self.payments = PaymentsApi(self.api)
        self.catalog = CatalogApi(self.api)
        self.checkout = Checkout(self.cart, DeliveryFeeResolver(DeliveryApi(self.api)), self.session_storage)
        self.poller: Optional[PaymentStatusPoller] = None

    @property
    def token(self) -> Optional[str]:
        return self.api.token

    def use_token(self, token: Optional[str]) -> None:
        self.api.token = token
        self.supabase.token = token

    def signed_in(self, auth: AuthSession) -> User:
        self.user = auth.user
        if auth.token:
            self.use_token(auth.token)
        return self.user

    def signed_out(self) -> None:
        self.user = None
        self.use_token(None)
        self.checkout.addresses = []
        self.checkout.selected_address_id = None
        self.checkout.inputs_changed()

    def cart_changed(self) -> None:
        self.checkout.inputs_changed()

    def payment_poller(
        self,
        payment_id: Optional[str] = None,
        order_id: Optional[str] = None,
        query_id: Optional[str] = None,
    ) -> PaymentStatusPoller:
        """Reuses the running poller unless the caller names a different payment."""
        asked = payment_id or order_id or query_id
        if self.poller is not None and self.poller.target is not None:
            current = self.poller.target
            if not asked or asked in (current.payment_id, current.order_id):
                return self.poller

        target = resolve_target(payment_id, order_id, query_id, self.session_storage)
        self.poller = PaymentStatusPoller(self.payments, self.orders, self.cart, target)
        return self.poller


class SessionRegistry:
    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        storage_dir: str = settings.STORAGE_DIR,
        idle_minutes: int = settings.SESSION_IDLE_MINUTES,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.http = http
        self.storage_dir = storage_dir
        self.max_idle = timedelta(minutes=idle_minutes)
        self.now = now
        self._sessions: Dict[str, ShopperSession] = {}
        self._last_access: Dict[str, datetime] = {}

    def _local_storage(self, session_id: str) -> Storage:
        if self.storage_dir:
            return JsonFileStorage(self.storage_dir, session_id)
        return MemoryStorage()

    def get_or_create(self, session_id: Optional[str]) -> ShopperSession:
        if not session_id or not SESSION_ID_RE.match(session_id):
            session_id = uuid.uuid4().hex
        session = self._sessions.get(session_id)
        if session is None:
            self.cleanup_inactive_sessions()
            session = ShopperSession(session_id, self.http, self._local_storage(session_id))
            self._sessions[session_id] = session
            logger.debug("new shopper session %s", session_id)
        self._last_access[session_id] = self.now()
        return session

    def cleanup_inactive_sessions(self) -> int:
        """Drops sessions idle for longer than ``max_idle``; file-backed carts stay on disk unless empty."""
        cutoff = self.now() - self.max_idle
        stale = [key for key, last_access in self._last_access.items() if last_access < cutoff]
        for key in stale:
            session = self._sessions.pop(key, None)
            del self._last_access[key]
            if session is not None and len(session.cart) == 0 and isinstance(session.cart.storage, JsonFileStorage):
                session.cart.storage.delete()
        if stale:
            logger.info("evicted %d inactive shopper sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)
