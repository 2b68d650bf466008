"""
Database Schemas for the storefront

Each Pydantic model below describes a MongoDB document or a request body.
Collection names are the lowercase of the document type:

- Product / Gadget / Fragrance / CarCare -> "product", "gadget", "fragrance", "carcare"
- Cart -> "cart", Order -> "order", Review -> "review"
- ContactMessage -> "contact", User -> "user"
"""
from typing import List, Optional
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime


class CatalogItem(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    category: str
    stock: int = Field(0, ge=0)
    images: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CatalogItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)


# Cart

class CartProduct(BaseModel):
    """Snapshot of the catalog item taken when the line was written."""
    id: str
    name: str
    price: float
    stock: int
    category: str
    kind: str
    image: Optional[str] = None


class CartLine(BaseModel):
    product: CartProduct
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    user_id: str
    items: List[CartLine] = []


class CartLineIn(BaseModel):
    productId: str
    quantity: int = Field(..., ge=1)
    category: str


class CartReplace(BaseModel):
    items: List[CartLineIn]


class CartItemAdd(CartLineIn):
    pass


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


# Orders

class ShippingInfo(BaseModel):
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country: Optional[str] = None

    model_config = {"populate_by_name": True}


class OrderConfirm(BaseModel):
    shippingInfo: ShippingInfo


class OrderLine(BaseModel):
    item_id: str
    kind: str
    name: str
    price: float
    quantity: int


class Order(BaseModel):
    user_id: str
    shipping_info: ShippingInfo
    items: List[OrderLine]
    total_price: float
    payment_method: str = "Cash on Delivery"
    status: str = "Pending"  # Pending, Processing, Shipped, Delivered


class OrderStatusUpdate(BaseModel):
    status: str


# Reviews

class ReviewCreate(BaseModel):
    rating: Optional[int] = None
    comment: Optional[str] = None


class Review(BaseModel):
    user_id: str
    item_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


# Contact

class ContactMessage(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


# Users

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    is_admin: Optional[bool] = None


class UserPublic(BaseModel):
    id: str
    name: str
    email: EmailStr
    is_admin: bool = False
