"""
Request bodies for the POS API.

Field names follow the JSON the POS screens send: snake_case for order fields,
camelCase where the screens use it (billNumber, gstRate, upiId, ...).
"""

import datetime as dt
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Allowed drift between stated and recomputed amounts.
AMOUNT_TOLERANCE = 0.01


class OrderItemIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(..., min_length=1, description="Menu item name")
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., ge=1)
    total: Optional[float] = Field(None, ge=0, description="price x quantity")

    @model_validator(mode="after")
    def _line_total(self):
        expected = round(self.price * self.quantity, 2)
        if self.total is None:
            self.total = expected
        elif abs(self.total - expected) > AMOUNT_TOLERANCE:
            raise ValueError(f"line total {self.total} does not equal price x quantity ({expected})")
        return self


class OrderRequest(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, coerce_numbers_to_str=True, allow_inf_nan=False, extra="ignore",
    )

    id: Optional[Union[int, str]] = Field(None, description="Client-generated id, not trusted as unique")
    bill_number: Optional[str] = Field(None, alias="billNumber")
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    table_number: str
    items: List[OrderItemIn] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    gst_rate: float = Field(5, ge=0)
    tax_amount: float = Field(..., ge=0)
    total: float = Field(..., ge=0)
    payment_mode: str = Field(..., min_length=1)
    cashier_id: Optional[int] = None
    cashier_name: Optional[str] = None
    status: Literal["pending", "completed"] = "pending"
    created_at: Optional[str] = None
    date: Optional[dt.date] = None
    generated_by: Literal["cashier", "admin", "import"] = "cashier"

    @field_validator("table_number", "payment_mode")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def _totals(self):
        if abs(self.subtotal + self.tax_amount - self.total) > AMOUNT_TOLERANCE:
            raise ValueError("total must equal subtotal + tax_amount")
        if abs(self.subtotal * (1 + self.gst_rate / 100) - self.total) > AMOUNT_TOLERANCE:
            raise ValueError("total must equal subtotal x (1 + gst_rate / 100)")
        return self


class StatusUpdate(BaseModel):
    status: Literal["pending", "completed"]


class LoginRequest(BaseModel):
    username: str
    password: str


class MenuItemIn(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    available: bool = True


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    role: Literal["admin", "cashier"]
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    permissions: Optional[str] = None


class PasswordUpdate(BaseModel):
    password: str = Field(..., min_length=1)


class RestaurantSettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    name: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None
    fssai: Optional[str] = None
    phone: Optional[str] = None
    gst_rate: Optional[float] = Field(None, alias="gstRate", ge=0)
    upi_id: Optional[str] = Field(None, alias="upiId")
    merchant_name: Optional[str] = Field(None, alias="merchantName")
    logo: Optional[str] = None


class QrConfigUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upi_id: Optional[str] = Field(None, alias="upiId")
    merchant_name: Optional[str] = Field(None, alias="merchantName")
    enabled: bool = True
    fixed_amount: bool = Field(False, alias="fixedAmount")
    uploaded_image: Optional[str] = Field(None, alias="uploadedImage")
