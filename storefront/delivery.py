"""Delivery fee resolution; answers from an older generation are dropped."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from storefront.api_client import ApiClient, pick, unwrap
from storefront.cart import cart_branch_id
from storefront.errors import ApiError
from storefront.i18n import t
from storefront.schemas import Address, CartItem, DeliveryFeeResult, NearestBranch

logger = logging.getLogger(__name__)

FeeInputs = Tuple[Optional[str], Optional[float], Optional[float], Optional[str]]


def fee_inputs(address: Optional[Address], cart: List[CartItem]) -> FeeInputs:
    if address is None:
        return (None, None, None, cart_branch_id(cart))
    return (address.id, address.latitude, address.longitude, cart_branch_id(cart))


class DeliveryApi:
    def __init__(self, api: ApiClient):
        self.api = api

    async def calculate_fee(self, latitude: float, longitude: float, branch_id: str) -> DeliveryFeeResult:
        result = await self.api.post("/delivery/calculate-fee", {
            "user_latitude": latitude,
            "user_longitude": longitude,
            "branch_id": branch_id,
        })
        data = unwrap(result)
        return DeliveryFeeResult(
            fee=float(pick(data, "fee", "delivery_fee", default=0.0)),
            distance_km=float(pick(data, "distance_km", "distance", default=0.0)),
            nearest_branch=NearestBranch(**(pick(data, "nearest_branch", "branch", default={}) or {})),
        )

    async def nearest_branch(self, latitude: float, longitude: float) -> NearestBranch:
        result = await self.api.post("/delivery/nearest-branch", {"latitude": latitude, "longitude": longitude})
        data = unwrap(result, "branch", "nearest_branch")
        return NearestBranch(**data)


@dataclass
class FeeState:
    result: Optional[DeliveryFeeResult] = None
    error: Optional[str] = None
    loading: bool = False
    generation: int = 0
    inputs: Optional[FeeInputs] = None

    @property
    def ready(self) -> bool:
        return self.result is not None and self.error is None and not self.loading


class DeliveryFeeResolver:
    def __init__(self, api: DeliveryApi):
        self.api = api
        self.state = FeeState()
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> None:
        """Inputs changed: forget the current fee until the next resolve."""
        self._generation += 1
        self.state = FeeState(generation=self._generation)

    def _fail(self, generation: int, inputs: FeeInputs, message: str) -> FeeState:
        if generation == self._generation:
            self.state = FeeState(error=message, generation=generation, inputs=inputs)
        return self.state

    async def resolve(self, address: Optional[Address], cart: List[CartItem], lang: Optional[str] = None) -> FeeState:
        self._generation += 1
        generation = self._generation
        inputs = fee_inputs(address, cart)

        if address is None:
            return self._fail(generation, inputs, t("address.required", lang))
        if not address.has_coordinates:
            return self._fail(generation, inputs, t("address.no_coordinates", lang))
        branch_id = cart_branch_id(cart)
        if not cart or not branch_id:
            return self._fail(generation, inputs, t("delivery.no_branch", lang))

        self.state = FeeState(loading=True, generation=generation, inputs=inputs)
        try:
            result = await self.api.calculate_fee(address.latitude, address.longitude, branch_id)
        except ApiError as e:
            if generation != self._generation:
                logger.debug("dropping failed fee answer of superseded generation %d", generation)
                return self.state
            logger.info("delivery fee for address %s failed: %s", address.id, e)
            return self._fail(generation, inputs, e.detail or t("delivery.not_available", lang))

        if generation != self._generation:
            logger.debug("dropping fee answer of superseded generation %d", generation)
            return self.state

        self.state = FeeState(result=result, generation=generation, inputs=inputs)
        return self.state
