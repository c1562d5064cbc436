from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _id_as_str(value):
    # backend rows mix uuid strings and integer ids
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


Id = Annotated[str, BeforeValidator(_id_as_str)]


# ---------- Cart ----------
class CartItem(BaseModel):
    id: Id
    type: Literal["product", "offer"]
    title_ar: str
    title_en: str
    image_url: Optional[str] = None
    quantity: int = Field(gt=0)
    totalPrice: float = Field(ge=0)
    size: Optional[str] = None
    sizeData: Optional[Any] = None
    variants: Optional[List[str]] = None
    offer_id: Optional[Id] = None
    notes: Optional[str] = None
    branch_id: Optional[Id] = None
    source_id: Optional[Id] = None


class CartView(BaseModel):
    items: List[CartItem]
    total_price: float
    total_items: int
    branch_id: Optional[Id] = None


class QuantityReq(BaseModel):
    quantity: int


class BranchSelectReq(BaseModel):
    branch_id: Id
    confirm: bool = False


# ---------- Addresses ----------
class Address(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    user_id: Optional[Id] = None
    title: Optional[str] = None
    street: str = ""
    building: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: str = ""
    area: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None
    is_default: bool = False

    @property
    def has_coordinates(self) -> bool:
        # 0.0 counts as missing, the way the storefront always treated it
        return bool(self.latitude) and bool(self.longitude)


class AddressCreate(BaseModel):
    title: str
    street: str
    building: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: str
    area: str
    latitude: float
    longitude: float
    notes: Optional[str] = None
    is_default: Optional[bool] = None


class AddressUpdate(BaseModel):
    title: Optional[str] = None
    street: Optional[str] = None
    building: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    area: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None
    is_default: Optional[bool] = None


class AddressSelectReq(BaseModel):
    address_id: Id


# ---------- Delivery ----------
class NearestBranch(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Id] = None
    name_ar: str = ""
    name_en: str = ""


class DeliveryFeeResult(BaseModel):
    fee: float
    distance_km: float
    nearest_branch: NearestBranch


# ---------- Orders ----------
class OrderItem(BaseModel):
    product_id: Optional[Id] = None
    offer_id: Optional[Id] = None
    type: Literal["product", "offer"]
    title_ar: str
    title_en: str
    quantity: int
    price_per_unit: float
    total_price: float
    size: Optional[str] = None
    size_data: Optional[Any] = None
    variants: Optional[List[str]] = None
    notes: Optional[str] = None


class CreateOrderData(BaseModel):
    address_id: Id
    delivery_type: Literal["delivery", "pickup"] = "delivery"
    branch_id: Optional[Id] = None
    items: List[OrderItem]
    subtotal: float
    delivery_fee: float
    total: float
    notes: Optional[str] = None
    payment_method: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    user_id: Optional[Id] = None
    address_id: Optional[Id] = None
    delivery_type: Optional[str] = None
    branch_id: Optional[Id] = None
    status: Optional[str] = None
    items: List[dict] = []
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    total: float = 0.0
    notes: Optional[str] = None


class PlaceOrderReq(BaseModel):
    notes: Optional[str] = None


# ---------- Payments ----------
class PaymentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    refunded = "refunded"


TERMINAL_STATUSES = frozenset({
    PaymentStatus.completed,
    PaymentStatus.failed,
    PaymentStatus.cancelled,
    PaymentStatus.refunded,
})


class Payment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    order_id: Optional[Id] = None
    user_id: Optional[Id] = None
    amount: float = 0.0
    currency: str = "EGP"
    status: PaymentStatus
    provider: Optional[str] = None
    transaction_id: Optional[Id] = None
    reference_number: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    order_status: Optional[str] = None
    order_payment_status: Optional[str] = None


class InitiatePaymentData(BaseModel):
    order_id: Id
    amount: float
    currency: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class PaymentSession(BaseModel):
    model_config = ConfigDict(extra="allow")

    paymentId: Id
    transactionId: Optional[str] = None
    paymentUrl: str
    expiresAt: Optional[str] = None


class PaymentRedirect(BaseModel):
    order_id: Id
    payment_id: Id
    payment_url: str
    return_url: Optional[str] = None


class PaymentCancelReq(BaseModel):
    payment_id: Optional[Id] = None
    order_id: Optional[Id] = None


# ---------- Auth ----------
class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class SignInReq(BaseModel):
    email: str
    password: str


class SignUpReq(BaseModel):
    email: str
    password: str
    full_name: str
    phone: str


class ProfileUpdateReq(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None


class ChangePasswordReq(BaseModel):
    old_password: str
    new_password: str


class TokenReq(BaseModel):
    token: str


# ---------- Catalog ----------
class Branch(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    name_ar: str = ""
    name_en: str = ""
    phone: Optional[str] = None
    address_ar: Optional[str] = None
    address_en: Optional[str] = None
    area_ar: Optional[str] = None
    area_en: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = True


class Category(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    name_ar: Optional[str] = None
    name_en: Optional[str] = None


class ProductSize(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Id] = None
    size_ar: str = ""
    size_en: str = ""
    price: float = 0.0
    offer_price: Optional[float] = None


class ProductType(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Id] = None
    name_ar: str = ""
    name_en: str = ""
    sizes: List[ProductSize] = []


class Product(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Id] = None
    title_ar: str = ""
    title_en: str = ""
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    category_id: Optional[Id] = None
    image_url: Optional[str] = None
    types: List[ProductType] = []


class ComboOffer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Id
    title_ar: str = ""
    title_en: str = ""
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    image_url: Optional[str] = None
    price: float = 0.0
    original_price: Optional[float] = None
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    is_active: Optional[bool] = None
