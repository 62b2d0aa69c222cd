"""
Database Schemas for the Vendor Storefront

Each Pydantic model represents a MongoDB collection. The collection name is the lowercase of the class name.

Collections:
- User (vendors and buyers, discriminated by role)
- Product
- Order
- Customer
- BuyerInteraction
- AutoPost
"""

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["vendor", "buyer"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
InterestStatus = Literal["interested", "negotiating", "purchased", "abandoned"]
InteractionAction = Literal["MessageVendor", "ViewProduct", "AddToCart", "PlaceOrder"]
PostFrequency = Literal["daily", "weekly", "custom"]

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)


def sanitize_input(value):
    """Trim text and strip inline <script> blocks. Non-strings pass through."""
    if not isinstance(value, str):
        return value
    return _SCRIPT_RE.sub("", value).strip()


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


class User(BaseModel):
    email: str = Field(..., description="Unique, lowercased email address")
    password: str = Field(..., description="bcrypt hash of the password")
    role: Role = Field(..., description="vendor | buyer")
    name: str = Field(..., description="Display name")
    phone: Optional[str] = Field(None, description="Contact phone number")
    is_active: bool = Field(True, description="Disabled accounts cannot log in")
    # vendor only
    business_name: Optional[str] = Field(None, description="Storefront name (vendors)")
    logo: Optional[str] = Field(None, description="Hosted logo URL")
    about: str = Field("", description="Storefront description")
    is_verified: bool = Field(False, description="Email verified; buyers are verified on signup")
    catalog_id: Optional[str] = Field(None, description="Public storefront id, set once at creation")
    # buyer only
    address: Optional[str] = Field(None, description="Default delivery address (buyers)")
    # one-time codes, stored hashed
    otp: Optional[str] = None
    otp_expiry: Optional[datetime] = None
    reset_otp: Optional[str] = None
    reset_otp_expires: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    price: float = Field(..., ge=0, description="Unit price")
    currency: str = Field("NGN", description="ISO currency code")
    description: str = Field("", description="Product description")
    image: Optional[str] = Field(None, description="Hosted image URL")
    category: str = Field("general", description="Free-form category")
    payment_link: Optional[str] = Field(None, description="External payment link")
    vendor_id: str = Field(..., description="Owning vendor's user id")
    is_active: bool = Field(True, description="False once the vendor deletes the product")
    featured: bool = Field(False, description="Shown on the buyer home page")
    views: int = Field(0, ge=0, description="Detail page view counter")
    stock: int = Field(0, ge=0, description="Units on hand (informational)")


class OrderItem(BaseModel):
    """Line item snapshot; never follows later product edits"""
    product_id: Optional[str] = Field(None, description="ID of the product at order time")
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    vendor_id: str = Field(..., description="Vendor the order was placed with")
    buyer_id: Optional[str] = Field(None, description="Set when a signed-in buyer placed the order")
    buyer_name: str
    buyer_phone: str
    buyer_email: Optional[str] = None
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    status: OrderStatus = Field("pending", description="pending | processing | shipped | delivered | cancelled")
    payment_status: PaymentStatus = Field("pending", description="pending | paid | failed")
    delivery_address: str
    notes: Optional[str] = None


class InterestedProduct(BaseModel):
    product_id: str
    timestamp: datetime
    status: InterestStatus = "interested"


class Customer(BaseModel):
    phone_number: str
    name: str = ""
    vendor_id: str
    last_interaction: datetime
    interested_products: List[InterestedProduct] = Field(default_factory=list)
    total_purchases: int = 0
    is_active: bool = True


class BuyerInteraction(BaseModel):
    buyer_id: str
    vendor_id: str
    product_id: Optional[str] = None
    action: InteractionAction
    timestamp: datetime


class AutoPost(BaseModel):
    vendor_id: str
    is_enabled: bool = False
    post_time: str = Field("09:00", description="Local time of day, HH:MM")
    selected_products: List[str] = Field(default_factory=list)
    last_posted: Optional[datetime] = None
    post_frequency: PostFrequency = "daily"
