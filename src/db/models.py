# provide dataclass models

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

Role = Literal["user", "seller", "admin"]
ProductStatus = Literal["available", "sold"]


@dataclass(frozen=True)
class User:
    uid: int
    username: str
    email: str
    role: Role
    full_name: Optional[str]
    phone: Optional[str]
    address: Optional[str]


@dataclass(frozen=True)
class Product:
    pid: int
    title: str
    descr: Optional[str]
    price: Decimal
    category: Optional[str]
    condition: Optional[str]
    image_url: Optional[str]
    seller_id: int
    status: ProductStatus
    views: int


@dataclass(frozen=True)
class Availability:
    """What the checkout needs to know about a listing right now."""

    pid: int
    price: Decimal
    seller_id: int
    status: ProductStatus

    @property
    def is_available(self) -> bool:
        return self.status == "available"


@dataclass(frozen=True)
class CartLine:
    line_id: int
    uid: int
    pid: int
    qty: int


@dataclass(frozen=True)
class CartEntry:
    """A cart line joined with its listing, as shown to the buyer."""

    line_id: int
    pid: int
    qty: int
    title: str
    price: Decimal
    seller_name: str
    added_at: str

    @property
    def line_total(self) -> Decimal:
        return self.price * self.qty


@dataclass(frozen=True)
class CartView:
    entries: List[CartEntry]
    total: Decimal

    @property
    def item_count(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class DeliveryDetails:
    full_name: str
    email: str
    phone: str
    delivery_address: str
    delivery_notes: Optional[str] = None


@dataclass(frozen=True)
class Order:
    oid: int
    order_number: str
    uid: int
    total_amount: Decimal
    status: str
    customer_name: str
    customer_email: str
    customer_phone: str
    delivery_address: str
    delivery_notes: Optional[str]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class OrderLine:
    line_id: int
    oid: int
    pid: int
    qty: int
    uprice: Decimal  # unit price at time of order


@dataclass(frozen=True)
class Receipt:
    order_id: int
    order_number: str
    total_amount: Decimal
    customer_name: str
    delivery_address: str
    item_count: int


@dataclass(frozen=True)
class OrderSummary:
    order: Order
    item_count: int
    product_titles: str


@dataclass(frozen=True)
class OrderDetailLine:
    line: OrderLine
    title: str
    descr: Optional[str]
    image_url: Optional[str]
    seller_name: str
    seller_full_name: Optional[str]

    @property
    def line_total(self) -> Decimal:
        return self.line.uprice * self.line.qty


@dataclass(frozen=True)
class OrderDetail:
    order: Order
    lines: List[OrderDetailLine]


@dataclass(frozen=True)
class SaleRecord:
    oid: int
    order_number: str
    order_date: str
    order_total: Decimal
    pid: int
    title: str
    qty: int
    uprice: Decimal
    buyer_name: str
    buyer_full_name: Optional[str]


@dataclass(frozen=True)
class SalesHistory:
    sales: List[SaleRecord]
    total_revenue: Decimal

    @property
    def total_sales(self) -> int:
        return len(self.sales)


@dataclass(frozen=True)
class AdminOverview:
    total_orders: int
    total_revenue: Decimal
    products_sold: int
    products_available: int
    recent_orders: List[Tuple[Order, str, Optional[str]]]  # (order, username, full_name)
