# request payloads accepted by the actions; all validation happens here
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db.models import CouponType, DeliveryMethod, Division, PaymentMethod, Role

SLUG_PATTERN = r"^[a-z0-9-]+$"
NAME_PATTERN = r"^[a-zA-Z\sÀ-ÿ]+$"
PHONE_PATTERN = r"^\d{9}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class OrderItemIn(Payload):
    product_id: int
    quantity: int = Field(ge=1)


class CreateOrderIn(Payload):
    name: str = Field(min_length=3, pattern=NAME_PATTERN)
    phone: str = Field(pattern=PHONE_PATTERN)
    items: List[OrderItemIn] = Field(min_length=1)


class CheckoutIn(CreateOrderIn):
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    shipping_address: str = ""
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_address_for_delivery(self):
        if self.delivery_method is DeliveryMethod.DELIVERY and len(self.shipping_address) < 5:
            raise ValueError("shipping_address is required for delivery")
        return self


class PosCustomerIn(Payload):
    name: str = ""
    dni: str = ""
    address: str = ""


class PosSaleIn(Payload):
    items: List[OrderItemIn] = Field(min_length=1)
    payment_method: PaymentMethod
    customer: PosCustomerIn = Field(default_factory=PosCustomerIn)


class AddressIn(Payload):
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    address: str = Field(min_length=5)
    address2: Optional[str] = None
    department: Optional[str] = None
    province: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    phone: str = Field(min_length=9)
    dni: Optional[str] = None


class ProductIn(Payload):
    title: str = Field(min_length=3)
    slug: str = Field(min_length=3, pattern=SLUG_PATTERN)
    description: str = Field(min_length=10)
    price: Decimal = Field(ge=0, decimal_places=2)
    stock: int = Field(ge=0)
    category_id: int
    images: List[str] = Field(min_length=1)
    is_available: bool = True
    division: Division
    wholesale_price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    wholesale_min_count: Optional[int] = Field(default=None, ge=1)
    discount_percentage: int = Field(default=0, ge=0, le=100)
    tags: List[str] | str = Field(default_factory=list)
    barcode: Optional[str] = None

    @field_validator("wholesale_price", "wholesale_min_count", "barcode", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return None if value == "" else value


class CategoryIn(Payload):
    name: str = Field(min_length=3)
    slug: str = Field(min_length=3, pattern=SLUG_PATTERN)
    division: Division
    image: Optional[str] = None


class StoreConfigIn(Payload):
    whatsapp_phone: str = Field(min_length=9)
    welcome_message: str = Field(min_length=5)
    local_delivery_price: Decimal = Field(ge=0, decimal_places=2)
    hero_image: Optional[str] = None
    hero_title: Optional[str] = None
    hero_subtitle: Optional[str] = None
    hero_button_text: Optional[str] = None
    hero_button_link: Optional[str] = None
    hero_btn_color: Optional[str] = None


class CouponIn(Payload):
    code: str = Field(min_length=3)
    discount: Decimal = Field(gt=0)
    type: CouponType

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def check_percentage_range(self):
        if self.type is CouponType.PERCENTAGE and self.discount > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class RegisterIn(Payload):
    name: str = Field(min_length=2)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)


class StaffUserIn(Payload):
    name: str = Field(min_length=2)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: Optional[str] = None
    role: Role = Role.SELLER
    image: Optional[str] = None


class CustomerProfileIn(Payload):
    name: str = Field(min_length=2)
    email: str = Field(pattern=EMAIL_PATTERN)
