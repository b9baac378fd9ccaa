"""
Request and response schemas for the Abu-Khadija Pharmacy API

Collections:
- account: patients who log in and place orders
- product: drugs in the catalog
- order: patient orders
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


# --- Accounts ---


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Full name")
    email: EmailStr = Field(..., description="Email address, unique regardless of case")
    phone: Optional[str] = Field(None, max_length=20, description="Contact phone")
    password: str = Field(..., min_length=6, max_length=72, description="Plain-text password")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    token: str
    token_type: str = "bearer"


class Account(BaseModel):
    id: str
    name: str
    email: EmailStr
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


# --- Catalog ---


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Drug name")
    price: float = Field(..., ge=0, description="Unit price")
    stock: int = Field(0, ge=0, description="Units in stock")
    description: Optional[str] = Field(None, description="Drug description")
    image: Optional[str] = Field(None, description="Image URL")
    category: Optional[str] = Field(None, max_length=100, description="Category, e.g. antibiotics")


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    description: Optional[str] = Field(None, description="null clears the description")
    image: Optional[str] = Field(None, description="null clears the image")
    category: Optional[str] = Field(None, max_length=100, description="null clears the category")


class Product(BaseModel):
    id: str
    name: str
    price: float
    stock: int = 0
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Orders ---


class LineItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    line_items: List[LineItemRequest] = Field(..., min_length=1)
    delivery_address: str = Field(..., min_length=1, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., description="Pending, Processing, Shipped, Delivered or Cancelled")


class OrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    unit_price: float
    quantity: int


class Order(BaseModel):
    id: str
    account_id: str
    line_items: List[OrderItem]
    total_amount: float
    delivery_address: str
    status: str = "Pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Responses ---


class Confirmation(BaseModel):
    message: str
    id: Optional[str] = None
