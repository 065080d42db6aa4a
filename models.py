from enum import Enum
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import List, Optional, Union
from datetime import datetime

# ---------------- USERS ----------------
class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"

class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

class LoginRequest(BaseModel):
    email: str
    password: str

class PublicUser(BaseModel):
    id: str
    name: str
    email: str
    role: Role = Role.USER
    phone: Optional[str] = None
    address: Optional[Union[str, dict]] = None

class AuthResponse(BaseModel):
    message: str
    token: str
    user: PublicUser

# ---------------- CART ----------------
class CartItem(BaseModel):
    product_id: str
    quantity: int

class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1

class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int

class Cart(BaseModel):
    user_id: str
    items: List[CartItem]

# ---------------- ORDERS ----------------
class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

DEFAULT_PAYMENT_METHOD = "cash_on_delivery"

class ShippingAddress(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    street: str
    city: str
    state: str
    zip_code: str
    country: str

class OrderItem(BaseModel):
    product_id: str
    name: str
    image: Optional[str] = None
    price: float
    quantity: int

class Order(BaseModel):
    id: str
    user_id: str
    items: List[OrderItem]
    total_amount: float
    shipping_address: ShippingAddress
    payment_method: str = DEFAULT_PAYMENT_METHOD
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    cart_cleared: bool = False
    created_at: datetime
    updated_at: datetime

class CheckoutRequest(BaseModel):
    # Left loose so the orchestrator can classify a missing address itself
    shipping_address: Optional[dict] = None
    payment_method: Optional[str] = None

class StatusUpdateRequest(BaseModel):
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None

# ---------------- PRODUCTS ----------------
class ProductIn(BaseModel):
    name: str
    category: str
    image: str
    new_price: float = Field(ge=0)
    old_price: float = Field(ge=0)
    description: str = ""
    in_stock: bool = True

class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    new_price: Optional[float] = Field(default=None, ge=0)
    old_price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    in_stock: Optional[bool] = None
