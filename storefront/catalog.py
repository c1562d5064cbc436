import logging
import math
from typing import List, Optional, Tuple

from pydantic import ValidationError as SchemaError

from storefront.api_client import ApiClient, normalize_list, pick, unwrap
from storefront.errors import ApiError, NotFoundError
from storefront.schemas import Branch, Category, ComboOffer, Product

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def branches_by_distance(branches: List[Branch], latitude: float, longitude: float) -> List[Tuple[Branch, Optional[float]]]:
    """Nearest first; branches without coordinates go last."""
    located = [
        (b, haversine_km(latitude, longitude, b.latitude, b.longitude))
        for b in branches if b.latitude is not None and b.longitude is not None
    ]
    located.sort(key=lambda pair: pair[1])
    unlocated = [(b, None) for b in branches if b.latitude is None or b.longitude is None]
    return located + unlocated


def _products_and_total(response) -> Tuple[list, int]:
    """The products endpoint has answered with several shapes over time."""
    if isinstance(response, list):
        return response, len(response)
    if not isinstance(response, dict):
        return [], 0
    data = response.get("data")
    if isinstance(data, list):
        return data, pick(response, "total", default=len(data))
    if isinstance(response.get("products"), list):
        return response["products"], pick(response, "total", default=len(response["products"]))
    if isinstance(data, dict) and isinstance(data.get("products"), list):
        return data["products"], pick(data, "total", default=len(data["products"]))
    return [], 0


class CatalogApi:
    def __init__(self, api: ApiClient):
        self.api = api

    # ---------- branches ----------
    async def get_branches(self, active_only: bool = True) -> List[Branch]:
        params = {"is_active": "true"} if active_only else None
        result = await self.api.get("/branches", params=params)
        rows = pick(result, "branches") if isinstance(result, dict) else None
        return [Branch(**row) for row in (rows if isinstance(rows, list) else normalize_list(result))]

    # ---------- categories ----------
    async def get_categories(self) -> List[Category]:
        result = await self.api.get("/categories")
        return [Category(**row) for row in normalize_list(unwrap(result, "categories"))]

    async def get_category(self, category_id) -> Category:
        result = await self.api.get(f"/categories/{category_id}")
        row = unwrap(result, "category")
        if not isinstance(row, dict):
            raise NotFoundError("api.request_failed")
        return Category(**row)

    # ---------- products ----------
    async def get_products(
        self,
        page: int = 1,
        limit: int = 10,
        category_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        search: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Tuple[List[Product], int]:
        params = {
            "page": page,
            "limit": limit,
            "category_id": category_id,
            "branch_id": branch_id,
            "search": search,
            "date": date,
        }
        try:
            response = await self.api.get("/products", params=params)
        except ApiError:
            # menu renders empty rather than failing
            logger.exception("products listing failed")
            return [], 0
        rows, total = _products_and_total(response)
        try:
            return [Product(**row) for row in rows], int(total)
        except (SchemaError, TypeError, ValueError):
            logger.exception("products listing returned unexpected rows")
            return [], 0

    async def get_product(self, product_id: str) -> Product:
        result = await self.api.get(f"/products/{product_id}")
        row = unwrap(result, "product")
        if not isinstance(row, dict):
            raise NotFoundError("api.request_failed")
        return Product(**row)

    # ---------- combo offers ----------
    async def get_combo_offers(self) -> List[ComboOffer]:
        result = await self.api.get("/combo-offers")
        return [ComboOffer(**row) for row in normalize_list(unwrap(result, "offers"))]

    async def get_combo_offer(self, offer_id: str) -> ComboOffer:
        result = await self.api.get(f"/combo-offers/{offer_id}")
        row = unwrap(result, "offer")
        if not isinstance(row, dict):
            raise NotFoundError("api.request_failed")
        return ComboOffer(**row)
