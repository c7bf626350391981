from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    func,
)

from .database import Base

ORDER_STATUSES = ("pending", "completed")
ORDER_ORIGINS = ("cashier", "admin", "import")


# Defines the ORM model for a bill stored in the database.
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)  # Auto-incrementing primary key.
    bill_number = Column(String, unique=True, nullable=False)  # Durable unique identifier.
    customer_name = Column(String)
    customer_phone = Column(String)
    table_number = Column(String, nullable=False)
    items = Column(JSON, nullable=False)  # [{name, price, quantity, total}, ...]
    subtotal = Column(Float, nullable=False)
    gst_rate = Column(Float, default=5)
    tax_amount = Column(Float, nullable=False)
    total = Column(Float, nullable=False)
    payment_mode = Column(String, nullable=False)  # Label only, no gateway behind it.
    cashier_id = Column(Integer)  # users.id, not enforced
    cashier_name = Column(String)
    status = Column(String, default="pending")  # "pending" or "completed"
    created_at = Column(DateTime, nullable=False, index=True)
    date = Column(Date, nullable=False)
    generated_by = Column(String, default="cashier")  # "cashier", "admin" or "import"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billNumber": self.bill_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "table_number": self.table_number,
            "items": list(self.items or []),
            "subtotal": self.subtotal,
            "gst_rate": self.gst_rate,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "payment_mode": self.payment_mode,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "date": self.date.isoformat() if self.date else None,
            "generated_by": self.generated_by,
        }


# The tables below are reference data read by the POS screens.

class RestaurantSettings(Base):
    __tablename__ = "restaurant_settings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String)
    gstin = Column(String)
    fssai = Column(String)
    phone = Column(String)
    gst_rate = Column(Float, default=5)
    upi_id = Column(String)
    merchant_name = Column(String)
    logo = Column(Text)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)  # Plain credential match, no hashing.
    role = Column(String, nullable=False)  # "admin" or "cashier"
    name = Column(String, nullable=False)
    phone = Column(String)
    last_login = Column(DateTime)
    permissions = Column(String)  # Comma separated
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "name": self.name,
            "phone": self.phone,
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "permissions": self.permissions,
        }


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.current_timestamp())


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    available = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "available": bool(self.available),
        }


class PaymentMode(Base):
    __tablename__ = "payment_modes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.current_timestamp())


class QrConfig(Base):
    __tablename__ = "qr_config"

    id = Column(Integer, primary_key=True, index=True)
    upi_id = Column(String)
    merchant_name = Column(String)
    enabled = Column(Boolean, default=True)
    fixed_amount = Column(Boolean, default=False)
    uploaded_image = Column(Text)  # Base64 encoded image
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())
