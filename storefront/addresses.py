import logging
from typing import List, Optional

from storefront.api_client import ApiClient, normalize_list, unwrap
from storefront.errors import NotFoundError
from storefront.schemas import Address, AddressCreate, AddressUpdate

logger = logging.getLogger(__name__)


def pick_default_address(addresses: List[Address]) -> Optional[Address]:
    """The default address, else the first one, else None."""
    if not addresses:
        return None
    return next((a for a in addresses if a.is_default), addresses[0])


def find_address(addresses: List[Address], address_id: Optional[str]) -> Address:
    for address in addresses:
        if address.id == address_id:
            return address
    raise NotFoundError("address.not_found")


def ensure_single_default(addresses: List[Address], default_id: str) -> List[Address]:
    """Local mirror of the server rule: exactly one default per user."""
    find_address(addresses, default_id)
    return [a.model_copy(update={"is_default": a.id == default_id}) for a in addresses]


class AddressesApi:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list(self) -> List[Address]:
        result = await self.api.get("/addresses")
        return [Address(**row) for row in normalize_list(unwrap(result, "addresses"))]

    async def add(self, data: AddressCreate) -> Address:
        result = await self.api.post("/addresses", data.model_dump(exclude_none=True))
        return Address(**unwrap(result, "address"))

    async def update(self, address_id: str, data: AddressUpdate) -> Address:
        result = await self.api.put(f"/addresses/{address_id}", data.model_dump(exclude_none=True))
        return Address(**unwrap(result, "address"))

    async def delete(self, address_id: str) -> None:
        await self.api.delete(f"/addresses/{address_id}")

    async def set_default(self, address_id: str) -> None:
        await self.api.patch(f"/addresses/{address_id}/default")
