from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

VALID_SIZES = ("S", "M", "L", "XL")
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
SLIDE_SIZES = ("medium", "large")


# --- Catalog ---

class SizeStock(BaseModel):
    size: str
    stock: int


class ProductCreate(BaseModel):
    product_name: Optional[str] = None
    product_description: Optional[str] = ""
    product_base_price: Optional[float] = None
    product_discounted_price: Optional[float] = None
    product_stock: Optional[int] = 0
    sizes: List[SizeStock] = []
    warranty: Optional[str] = ""
    product_images: Optional[List[str]] = None
    category: Optional[str] = None
    subcategories: List[str] = []
    brand_name: Optional[str] = None
    product_code: Optional[str] = None
    rating: Optional[float] = None
    bg_color: Optional[str] = None
    shipping: Optional[float] = None
    payment: Optional[List[str]] = None
    isNewArrival: bool = False
    isBestSeller: bool = False


class ProductUpdate(BaseModel):
    """Every field is optional; a field left out of the request stays unchanged."""

    product_name: Optional[str] = None
    product_description: Optional[str] = None
    product_base_price: Optional[float] = None
    product_discounted_price: Optional[float] = None
    product_stock: Optional[int] = None
    sizes: Optional[List[SizeStock]] = None
    warranty: Optional[str] = None
    product_images: Optional[List[str]] = None
    category: Optional[str] = None
    subcategories: Optional[List[str]] = None
    brand_name: Optional[str] = None
    product_code: Optional[str] = None
    rating: Optional[float] = None
    bg_color: Optional[str] = None
    shipping: Optional[float] = None
    payment: Optional[List[str]] = None
    isNewArrival: Optional[bool] = None
    isBestSeller: Optional[bool] = None


class ReviewCreate(BaseModel):
    user_id: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None


class CategoryCreate(BaseModel):
    name: Optional[str] = None
    parent_category: Optional[str] = None


# --- Cart ---

class CartItemIn(BaseModel):
    product_id: Optional[str] = None
    selected_image: Optional[str] = None
    selected_size: Optional[str] = None
    guestId: Optional[str] = None
    quantity: int = Field(1, ge=1)


# --- Orders ---

class OrderLineIn(BaseModel):
    product_id: Optional[str] = None
    quantity: Optional[int] = None
    selected_image: Optional[str] = None
    selected_size: Optional[str] = None


class OrderCreate(BaseModel):
    products: Optional[List[OrderLineIn]] = None
    total_amount: Optional[float] = None  # client-side subtotal, informational only
    shipping_address: Optional[str] = None
    order_email: Optional[str] = None
    phone_number: Optional[str] = None
    full_name: Optional[str] = None
    guestId: Optional[str] = None
    discount_code: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None


# --- Subscriptions & discounts ---

class SubscribeRequest(BaseModel):
    email: EmailStr


class DiscountCheck(BaseModel):
    code: str
    email: EmailStr


# --- Analytics ---

class ActivityIn(BaseModel):
    event_type: Optional[str] = None
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    user_display: Optional[str] = None
    session_id: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None
    element: Optional[str] = None
    data: Dict[str, Any] = {}
    duration_ms: Optional[int] = None
    meta: Dict[str, Any] = {}


# --- Campaigns ---

class CampaignCreate(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None


# --- Slides ---

class SlideCreate(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    buttonText: Optional[str] = None
    image: Optional[str] = None
    mobileImage: Optional[str] = None
    link: Optional[str] = None
    bgColor: Optional[str] = None
    size: Optional[str] = None


class SlideUpdate(SlideCreate):
    """Fields left out of the request stay unchanged."""
