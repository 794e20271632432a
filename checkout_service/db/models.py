
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, ForeignKey, BigInteger, JSON, UniqueConstraint
from checkout_service.db.session import Base

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

class Product(Base):
    __tablename__ = "products"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sale_price: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    sold_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

class CartItem(Base):
    __tablename__ = "cart_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cart_id: Mapped[str] = mapped_column(String(64), index=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"))
    quantity: Mapped[int] = mapped_column(Integer)
    selected_color: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    selected_size: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    delivery_option: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    product = relationship("Product")

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("stripe_session_id", name="uq_orders_stripe_session_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    stripe_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3), default="usd")
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.PENDING.value)
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[int] = mapped_column(BigInteger)
    selected_color: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    selected_size: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    delivery_option: Mapped[str] = mapped_column(String(64), default="pay_on_website")
    status: Mapped[str] = mapped_column(String(32), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="items")
