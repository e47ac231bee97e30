# dataclass row models; money fields are Decimal, rows store integer cents

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from utils.pure import (
    apply_percentage_discount,
    from_cents,
    load_list,
    money_to_float,
    to_cents,
)


class Division(str, Enum):
    JUGUETERIA = "JUGUETERIA"
    FIESTAS = "FIESTAS"


class Role(str, Enum):
    USER = "USER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DeliveryMethod(str, Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class PaymentMethod(str, Enum):
    YAPE = "YAPE"
    PLIN = "PLIN"
    EFECTIVO = "EFECTIVO"
    TARJETA = "TARJETA"


class CouponType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


DEFAULT_DIVISION = Division.JUGUETERIA


def _ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, passed explicitly into every scoped operation."""

    user_id: int
    role: Role = Role.USER

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.SELLER)


@dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str
    password: Optional[str]
    role: Role
    auth_provider: str
    image: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password=row["password"],
            role=Role(row["role"]),
            auth_provider=row["auth_provider"],
            image=row["image"],
            created_at=_ts(row["created_at"]),
        )


@dataclass(frozen=True)
class Address:
    id: int
    user_id: int
    first_name: str
    last_name: str
    address: str
    address2: Optional[str]
    phone: str
    dni: Optional[str]
    city: str
    province: str
    country: str

    @classmethod
    def from_row(cls, row) -> "Address":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            address=row["address"],
            address2=row["address2"],
            phone=row["phone"],
            dni=row["dni"],
            city=row["city"],
            province=row["province"],
            country=row["country"],
        )


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    slug: str
    division: Division
    image: Optional[str] = None
    product_count: int = 0

    @classmethod
    def from_row(cls, row) -> "Category":
        keys = row.keys()
        return cls(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            division=Division(row["division"]),
            image=row["image"],
            product_count=row["product_count"] if "product_count" in keys else 0,
        )


@dataclass(frozen=True)
class Product:
    id: int
    title: str
    slug: str
    description: str
    price: Decimal
    stock: int
    is_available: bool
    division: Division
    category_id: int
    category_name: str
    category_slug: str
    images: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    wholesale_price: Optional[Decimal] = None
    wholesale_min_count: Optional[int] = None
    discount_percentage: int = 0
    barcode: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Product":
        return cls(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            description=row["description"],
            price=from_cents(row["price"]),
            stock=row["stock"],
            is_available=bool(row["is_available"]),
            division=Division(row["division"]),
            category_id=row["category_id"],
            category_name=row["category_name"],
            category_slug=row["category_slug"],
            images=load_list(row["images"]),
            tags=load_list(row["tags"]),
            wholesale_price=from_cents(row["wholesale_price"]),
            wholesale_min_count=row["wholesale_min_count"],
            discount_percentage=row["discount_percentage"],
            barcode=row["barcode"],
            created_at=_ts(row["created_at"]),
            updated_at=_ts(row["updated_at"]),
        )

    def unit_price(self, quantity: int) -> Decimal:
        """Price charged per unit when buying ``quantity`` units."""
        if (
            self.wholesale_price is not None
            and self.wholesale_min_count
            and quantity >= self.wholesale_min_count
        ):
            return self.wholesale_price
        return from_cents(
            apply_percentage_discount(to_cents(self.price), self.discount_percentage)
        )

    def to_public(self) -> Dict:
        """Plain-numeric view for presentation layers (prices as float)."""
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "price": money_to_float(self.price),
            "stock": self.stock,
            "images": list(self.images),
            "isAvailable": self.is_available,
            "wholesalePrice": money_to_float(self.wholesale_price),
            "wholesaleMinCount": self.wholesale_min_count,
            "discountPercentage": self.discount_percentage,
            "tags": list(self.tags),
            "division": self.division.value,
            "barcode": self.barcode,
            "createdAt": self.created_at,
            "category": {"name": self.category_name, "slug": self.category_slug},
        }


@dataclass(frozen=True)
class OrderItem:
    id: int
    order_id: str
    product_id: int
    quantity: int
    price: Decimal  # unit price snapshot at order time
    product_title: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_row(cls, row) -> "OrderItem":
        keys = row.keys()
        return cls(
            id=row["id"],
            order_id=row["order_id"],
            product_id=row["product_id"],
            quantity=row["quantity"],
            price=from_cents(row["price"]),
            product_title=row["product_title"] if "product_title" in keys else "",
        )


@dataclass(frozen=True)
class Order:
    id: str
    user_id: Optional[int]
    client_name: str
    client_phone: str
    status: OrderStatus
    is_paid: bool
    total_amount: Decimal
    total_items: int
    delivery_method: DeliveryMethod
    shipping_address: str
    shipping_cost: Decimal
    notes: Optional[str]
    stock_applied: bool
    created_at: datetime
    updated_at: datetime
    items: List[OrderItem] = field(default_factory=list)

    @property
    def grand_total(self) -> Decimal:
        return self.total_amount + self.shipping_cost

    @classmethod
    def from_row(cls, row, items: Optional[List[OrderItem]] = None) -> "Order":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            client_name=row["client_name"],
            client_phone=row["client_phone"],
            status=OrderStatus(row["status"]),
            is_paid=bool(row["is_paid"]),
            total_amount=from_cents(row["total_amount"]),
            total_items=row["total_items"],
            delivery_method=DeliveryMethod(row["delivery_method"]),
            shipping_address=row["shipping_address"],
            shipping_cost=from_cents(row["shipping_cost"]),
            notes=row["notes"],
            stock_applied=bool(row["stock_applied"]),
            created_at=_ts(row["created_at"]),
            updated_at=_ts(row["updated_at"]),
            items=items or [],
        )


@dataclass(frozen=True)
class Coupon:
    id: int
    code: str
    discount: int  # cents for FIXED, whole percent for PERCENTAGE
    type: CouponType
    is_active: bool

    @classmethod
    def from_row(cls, row) -> "Coupon":
        return cls(
            id=row["id"],
            code=row["code"],
            discount=row["discount"],
            type=CouponType(row["type"]),
            is_active=bool(row["is_active"]),
        )


@dataclass(frozen=True)
class Page:
    items: list
    total: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return max((self.total + self.page_size - 1) // self.page_size, 1)
