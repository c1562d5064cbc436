import asyncio
import logging
import time
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront import settings
from storefront.branches import SwitchOutcome, request_branch_switch
from storefront.catalog import branches_by_distance
from storefront.delivery import FeeState
from storefront.errors import ApiError, AuthError, NotFoundError, StorefrontError, ValidationError
from storefront.i18n import resolve_lang, t
from storefront.logging_config import setup_logging
from storefront.schemas import (
    AddressCreate,
    AddressSelectReq,
    AddressUpdate,
    BranchSelectReq,
    CartItem,
    ChangePasswordReq,
    PaymentCancelReq,
    PlaceOrderReq,
    ProfileUpdateReq,
    QuantityReq,
    SignInReq,
    SignUpReq,
    TokenReq,
    User,
)
from storefront.session import SessionRegistry, ShopperSession

logger = logging.getLogger(__name__)


# ---------- Config ----------
def _parse_cors(env_val: str):
    if not env_val or env_val == "*":
        return {"allow_origins": ["*"]}
    if env_val.lower().startswith("regex:"):
        return {"allow_origin_regex": env_val[len("regex:"):]}
    origins = [o.strip() for o in env_val.split(",") if o.strip()]
    return {"allow_origins": origins or ["*"]}


app = FastAPI(
    title="Restaurant Storefront",
    version="1.0.0",
    description="Storefront API: cart, branch selection, delivery fee, checkout and payment tracking.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    **_parse_cors(settings.CORS_ALLOWED_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

client: Optional[httpx.AsyncClient] = None
registry = SessionRegistry()


@app.on_event("startup")
async def _startup():
    global client
    setup_logging()
    client = httpx.AsyncClient(timeout=httpx.Timeout(settings.REQUEST_TIMEOUT))
    registry.http = client


@app.on_event("shutdown")
async def _shutdown():
    global client
    if client:
        await client.aclose()


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


# ---------- Errors ----------
def _request_lang(request: Request) -> str:
    return resolve_lang(request.query_params.get("lang") or request.headers.get("accept-language"))


@app.exception_handler(StorefrontError)
async def _storefront_error(request: Request, exc: StorefrontError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.key, "message": exc.localized(_request_lang(request))},
    )


# ---------- Dependencies ----------
def lang_param(
    lang: Optional[str] = Query(default=None),
    accept_language: Optional[str] = Header(default=None),
) -> str:
    return resolve_lang(lang or accept_language)


def shopper(
    request: Request,
    response: Response,
    authorization: Optional[str] = Header(default=None),
) -> ShopperSession:
    cookie = request.cookies.get(settings.SESSION_COOKIE)
    session = registry.get_or_create(cookie)
    if session.id != cookie:
        response.set_cookie(settings.SESSION_COOKIE, session.id, httponly=True, samesite="lax")
    if authorization and authorization.lower().startswith("bearer "):
        session.use_token(authorization[len("bearer "):].strip())
    return session


async def current_user(session: ShopperSession) -> User:
    if session.user is None and session.token:
        session.user = await session.auth.me()
    if session.user is None:
        raise AuthError("auth.login_required")
    return session.user


def fee_payload(fee: FeeState) -> dict:
    result = fee.result
    return {
        "fee": result.fee if result else None,
        "distance_km": result.distance_km if result else None,
        "nearest_branch": result.nearest_branch.model_dump() if result else None,
        "error": fee.error,
        "loading": fee.loading,
        "ready": fee.ready,
    }


# ---------- Health ----------
@app.get("/health")
async def healthz(deep: int = Query(default=0, ge=0, le=1)):
    """
    Liveness / readiness:
    - GET /health         -> fast, no dependency calls
    - GET /health?deep=1  -> checks the REST API and Supabase (best effort)
    """
    status = {
        "service": "storefront",
        "time": now_iso(),
        "cors": settings.CORS_ALLOWED_ORIGINS,
        "sessions": len(registry),
        "status": "ok"
    }

    if not deep:
        return status

    async def check(url: str, headers: Optional[dict] = None):
        try:
            r = await client.get(url, headers=headers)
            return {"url": url, "status": r.status_code}
        except httpx.HTTPError as e:
            return {"url": url, "error": str(e)}

    checks = [check(f"{settings.API_URL}/branches")]
    if settings.SUPABASE_URL:
        checks.append(check(f"{settings.SUPABASE_URL}/rest/v1/", {"apikey": settings.SUPABASE_KEY}))
    results = await asyncio.gather(*checks)

    status["dependencies"] = {"api": results[0]}
    if len(results) > 1:
        status["dependencies"]["supabase"] = results[1]
    all_ok = all(c.get("status") == 200 for c in results)
    status["status"] = "ready" if all_ok else "degraded"
    return status


@app.get("/api/config")
async def public_config():
    return {
        "default_lang": settings.DEFAULT_LANG,
        "languages": list(settings.SUPPORTED_LANGS),
        "whatsapp_number": settings.WHATSAPP_NUMBER,
        "support_phone": settings.SUPPORT_PHONE,
        "google_client_id": settings.GOOGLE_CLIENT_ID,
        "facebook_app_id": settings.FACEBOOK_APP_ID,
        "google_maps_api_key": settings.GOOGLE_MAPS_API_KEY,
        "payment_poll_interval": settings.PAYMENT_POLL_INTERVAL,
        "payment_cancel_grace": settings.PAYMENT_CANCEL_GRACE,
    }


# ---------- Cart ----------
@app.get("/api/cart")
async def get_cart(session: ShopperSession = Depends(shopper)):
    return session.cart.view()


@app.post("/api/cart/items", status_code=201)
async def add_to_cart(item: CartItem, session: ShopperSession = Depends(shopper)):
    session.cart.add(item)
    session.cart_changed()
    return session.cart.view()


@app.patch("/api/cart/items/{item_id}")
async def update_cart_item(item_id: str, payload: QuantityReq, session: ShopperSession = Depends(shopper)):
    if session.cart.find(item_id) is None:
        raise NotFoundError("cart.item_not_found")
    session.cart.update_quantity(item_id, payload.quantity)
    session.cart_changed()
    return session.cart.view()


@app.delete("/api/cart/items/{item_id}")
async def remove_cart_item(item_id: str, session: ShopperSession = Depends(shopper)):
    if session.cart.find(item_id) is None:
        raise NotFoundError("cart.item_not_found")
    session.cart.remove(item_id)
    session.cart_changed()
    return session.cart.view()


@app.delete("/api/cart")
async def clear_cart(session: ShopperSession = Depends(shopper)):
    session.cart.clear()
    session.cart_changed()
    return session.cart.view()


# ---------- Branches ----------
@app.get("/api/branches")
async def list_branches(
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    session: ShopperSession = Depends(shopper),
):
    branches = await session.catalog.get_branches()
    if lat is None or lng is None:
        rows = [b.model_dump() for b in branches]
    else:
        rows = [{**b.model_dump(), "distance_km": d} for b, d in branches_by_distance(branches, lat, lng)]
    return {"branches": rows, "selected_branch_id": session.cart.selected_branch_id}


@app.post("/api/branch")
async def select_branch(
    payload: BranchSelectReq,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    result = request_branch_switch(session.cart, payload.branch_id, confirm=payload.confirm)
    if result.outcome is not SwitchOutcome.confirmation_required:
        session.cart_changed()
    return {
        "outcome": result.outcome.value,
        "branch_id": result.branch_id,
        "cart_cleared": result.cart_cleared,
        "message": t("branch.change_confirm", lang) if result.needs_confirmation else None,
        "cart": session.cart.view(),
    }


# ---------- Catalog ----------
@app.get("/api/categories")
async def list_categories(session: ShopperSession = Depends(shopper)):
    return {"categories": await session.catalog.get_categories()}


@app.get("/api/categories/{category_id}")
async def get_category(category_id: str, session: ShopperSession = Depends(shopper)):
    return await session.catalog.get_category(category_id)


@app.get("/api/products")
async def list_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    category_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    search: Optional[str] = None,
    date: Optional[str] = None,
    session: ShopperSession = Depends(shopper),
):
    products, total = await session.catalog.get_products(
        page=page,
        limit=limit,
        category_id=category_id,
        branch_id=branch_id or session.cart.selected_branch_id,
        search=search,
        date=date,
    )
    return {"products": products, "total": total, "page": page, "limit": limit}


@app.get("/api/products/{product_id}")
async def get_product(product_id: str, session: ShopperSession = Depends(shopper)):
    return await session.catalog.get_product(product_id)


@app.get("/api/offers")
async def list_offers(session: ShopperSession = Depends(shopper)):
    return {"offers": await session.catalog.get_combo_offers()}


@app.get("/api/offers/{offer_id}")
async def get_offer(offer_id: str, session: ShopperSession = Depends(shopper)):
    return await session.catalog.get_combo_offer(offer_id)


# ---------- Auth ----------
@app.post("/api/auth/signin")
async def sign_in(payload: SignInReq, session: ShopperSession = Depends(shopper)):
    auth = await session.auth.sign_in(payload.email, payload.password)
    return {"user": session.signed_in(auth), "token": auth.token}


@app.post("/api/auth/signup", status_code=201)
async def sign_up(payload: SignUpReq, session: ShopperSession = Depends(shopper)):
    auth = await session.auth.sign_up(payload.email, payload.password, payload.full_name, payload.phone)
    if auth.token:
        session.signed_in(auth)
    return {"user": auth.user, "token": auth.token}


@app.post("/api/auth/google")
async def google_sign_in(payload: TokenReq, session: ShopperSession = Depends(shopper)):
    auth = await session.auth.google_sign_in(payload.token)
    return {"user": session.signed_in(auth), "token": auth.token}


@app.post("/api/auth/facebook")
async def facebook_sign_in(payload: TokenReq, session: ShopperSession = Depends(shopper)):
    auth = await session.auth.facebook_sign_in(payload.token)
    return {"user": session.signed_in(auth), "token": auth.token}


@app.post("/api/auth/signout")
async def sign_out(session: ShopperSession = Depends(shopper)):
    if session.token:
        try:
            await session.auth.sign_out()
        except ApiError as e:
            logger.warning("backend sign-out failed: %s", e)
    session.signed_out()
    return {"success": True}


@app.get("/api/auth/me")
async def me(session: ShopperSession = Depends(shopper)):
    if session.user is None and session.token:
        session.user = await session.auth.me()
    return {"user": session.user}


@app.put("/api/auth/profile")
async def update_profile(payload: ProfileUpdateReq, session: ShopperSession = Depends(shopper)):
    user = await current_user(session)
    changes = await session.auth.update_profile(payload.full_name, payload.phone)
    session.user = user.model_copy(update=changes)
    return {"user": session.user}


@app.put("/api/auth/password")
async def change_password(payload: ChangePasswordReq, session: ShopperSession = Depends(shopper)):
    await current_user(session)
    await session.auth.change_password(payload.old_password, payload.new_password)
    return {"success": True}


# ---------- Addresses ----------
@app.get("/api/addresses")
async def list_addresses(session: ShopperSession = Depends(shopper)):
    await current_user(session)
    return {"addresses": await session.addresses.list()}


@app.post("/api/addresses", status_code=201)
async def add_address(
    payload: AddressCreate,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    await current_user(session)
    address = await session.addresses.add(payload)
    await session.checkout.load_addresses(session.addresses, lang)
    return {"address": address}


@app.put("/api/addresses/{address_id}")
async def update_address(
    address_id: str,
    payload: AddressUpdate,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    await current_user(session)
    address = await session.addresses.update(address_id, payload)
    await session.checkout.load_addresses(session.addresses, lang)
    return {"address": address}


@app.delete("/api/addresses/{address_id}")
async def delete_address(
    address_id: str,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    await current_user(session)
    await session.addresses.delete(address_id)
    await session.checkout.load_addresses(session.addresses, lang)
    return {"success": True}


@app.post("/api/addresses/{address_id}/default")
async def set_default_address(address_id: str, session: ShopperSession = Depends(shopper)):
    await current_user(session)
    await session.addresses.set_default(address_id)
    return {"addresses": await session.addresses.list()}


# ---------- Checkout ----------
@app.get("/api/checkout")
async def checkout_summary(session: ShopperSession = Depends(shopper), lang: str = Depends(lang_param)):
    await current_user(session)
    checkout = session.checkout
    await checkout.load_addresses(session.addresses, lang)
    subtotal = session.cart.total_price()
    delivery_fee = checkout.fee.result.fee if checkout.fee.ready else 0.0
    return {
        "cart": session.cart.view(),
        "addresses": checkout.addresses,
        "selected_address_id": checkout.selected_address_id,
        "fee": fee_payload(checkout.fee),
        "notes": checkout.notes,
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "total": subtotal + delivery_fee,
    }


@app.post("/api/checkout/address")
async def select_checkout_address(
    payload: AddressSelectReq,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    await current_user(session)
    if not session.checkout.addresses:
        session.checkout.addresses = await session.addresses.list()
    fee = await session.checkout.select_address(payload.address_id, lang)
    return {"selected_address_id": payload.address_id, "fee": fee_payload(fee)}


@app.post("/api/checkout/order", status_code=201)
async def place_order(
    payload: PlaceOrderReq,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    user = await current_user(session)
    await session.checkout.ensure_fee(lang)
    redirect = await session.checkout.place_order(user, session.orders, session.payments, lang, payload.notes)
    # a new order starts a new result page
    session.poller = None
    return redirect


# ---------- Orders ----------
@app.get("/api/orders")
async def list_orders(session: ShopperSession = Depends(shopper)):
    await current_user(session)
    return {"orders": await session.orders.list()}


@app.get("/api/orders/{order_id}")
async def get_order(order_id: str, session: ShopperSession = Depends(shopper)):
    await current_user(session)
    return await session.orders.get(order_id)


# ---------- Payment ----------
@app.get("/api/payment/result")
async def payment_result(
    id: Optional[str] = Query(default=None),
    payment_id: Optional[str] = Query(default=None),
    order_id: Optional[str] = Query(default=None),
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    """One status poll per call; clients repeat every ``poll_interval`` seconds until ``state == "done"``."""
    poller = session.payment_poller(payment_id, order_id, id)
    await poller.poll_once()
    return poller.snapshot(lang, session.user)


@app.post("/api/payment/cancel")
async def cancel_payment(
    payload: PaymentCancelReq,
    session: ShopperSession = Depends(shopper),
    lang: str = Depends(lang_param),
):
    poller = session.payment_poller(payload.payment_id, payload.order_id)
    if not poller.cancel_available():
        raise ValidationError("payment.cancel_not_available")
    await poller.cancel()
    await poller.poll_once()
    return {**poller.snapshot(lang, session.user), "cancel_message": t("payment.cancelled_ok", lang)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000)
