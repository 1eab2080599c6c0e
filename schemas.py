from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from formatters import to_number

# Each class with a collection => one Mongo collection:
# Product -> "products", Order -> "orders", StoreSettings -> "settings"

PLACEHOLDER_IMAGE = "https://picsum.photos/800/600"


class Category(str, Enum):
    sofa = "sofa"
    armchair = "armchair"
    chaise = "chaise"
    pouf = "pouf"
    bed = "bed"


class SortMode(str, Enum):
    price_asc = "price_asc"
    price_desc = "price_desc"
    newest = "newest"


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "products"
    """
    model_config = ConfigDict(use_enum_values=True)

    id: Optional[str] = None
    name: str
    description: str = ""
    category: Category = Field(Category.sofa, validate_default=True)
    price: float = Field(0, ge=0, description="0 means price on request")
    colors: List[str] = Field(default_factory=list)
    fabrics: List[str] = Field(default_factory=list)
    dimensions: str = ""
    images: List[str] = Field(default_factory=lambda: [PLACEHOLDER_IMAGE])
    active: bool = True
    is_featured: bool = False
    created_at: Optional[datetime] = None

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, v: Any) -> float:
        return to_number(v)


class ProductIn(BaseModel):
    """Admin create/update payload. Colors and fabrics accept a comma separated string."""
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1)
    description: str = ""
    category: Category = Field(Category.sofa, validate_default=True)
    price: float = Field(0, ge=0)
    colors: List[str] = Field(default_factory=list)
    fabrics: List[str] = Field(default_factory=list)
    dimensions: str = ""
    images: List[str] = Field(default_factory=list)
    active: bool = True
    is_featured: bool = False

    @field_validator("colors", "fabrics", mode="before")
    @classmethod
    def _split_csv(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [s.strip() for s in v if isinstance(s, str) and s.strip()]
        return v


class CartLine(Product):
    quantity: int = Field(1, ge=1)
    selected_color: Optional[str] = None
    selected_fabric: Optional[str] = None


class CartAdd(BaseModel):
    product_id: str
    quantity: int = 1
    color: Optional[str] = None
    fabric: Optional[str] = None


class CartView(BaseModel):
    items: List[CartLine]
    total_items: int
    total_price: float


class CheckoutForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, description="Customer full name")
    phone: str = Field(..., min_length=1, description="Customer WhatsApp")
    city: str = Field(..., min_length=1, description="City / neighbourhood")
    notes: Optional[str] = None


class CheckoutOut(BaseModel):
    order_id: Optional[str] = None
    persisted: bool
    warning: Optional[str] = None
    total_price: float
    message: str
    whatsapp_url: str
    redirect_to: str = "/"


class ContactForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: str = ""
    subject: str = ""
    message: str = Field(..., min_length=1)


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "orders"
    """
    id: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_city: str = ""
    items: List[dict] = Field(default_factory=list, description="Cart lines as submitted")
    total_price: Optional[float] = None
    notes: Optional[str] = ""
    created_at: Optional[datetime] = None

    @field_validator("total_price", mode="before")
    @classmethod
    def _coerce_total(cls, v: Any) -> Optional[float]:
        return None if v is None else to_number(v)


class OrderOut(Order):
    display_total: float
    customer_phone_display: str = ""


class OrderList(BaseModel):
    orders: List[OrderOut]
    count: int
    revenue: float


class StoreSettings(BaseModel):
    """
    Settings collection schema (singleton)
    Collection name: "settings", id "global"
    """
    id: str = "global"
    store_name: str
    whatsapp_number: str
    contact_email: str
    contact_address: str
    hours_mon_fri: str
    hours_sat: str
    primary_color: str
    secondary_color: str
    updated_at: Optional[datetime] = None


class SettingsUpdate(BaseModel):
    store_name: Optional[str] = None
    whatsapp_number: Optional[str] = None
    contact_email: Optional[str] = None
    contact_address: Optional[str] = None
    hours_mon_fri: Optional[str] = None
    hours_sat: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class SessionOut(BaseModel):
    has_session: bool
    email: Optional[str] = None
