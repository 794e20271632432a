from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- checkout ---

class CartLine(BaseModel):
    model_config = ConfigDict(extra="allow")

    product_id: str
    quantity: Optional[int] = None
    price: Optional[int] = None
    cart_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    delivery_option: Optional[str] = None
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    cart_items: List[CartLine] = Field(default_factory=list, alias="cartItems")
    user_email: Optional[EmailStr] = Field(default=None, alias="userEmail")
    user_name: Optional[str] = Field(default=None, alias="userName")
    shipping_address: Optional[Dict[str, Any]] = Field(default=None, alias="shippingAddress")

class PaymentLineItem(BaseModel):
    name: str
    description: str
    unit_price: int
    quantity: int

class CheckoutSession(BaseModel):
    session_id: str
    session_url: str

class CheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(alias="sessionId")
    session_url: str = Field(alias="sessionUrl")
    order_id: str = Field(alias="orderId")
    total_amount: int = Field(alias="totalAmount")
    orders: List[Dict[str, Any]] = []

class PaymentStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    status: Optional[str] = None
    payment_intent_id: Optional[str] = Field(default=None, alias="paymentIntentId")
    amount_total: Optional[float] = Field(default=None, alias="amountTotal")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    customer_details: Optional[Dict[str, Any]] = Field(default=None, alias="customerDetails")
    metadata: Dict[str, Any] = {}
    client_reference_id: Optional[str] = Field(default=None, alias="clientReferenceId")

# --- webhook envelope ---

class EventData(BaseModel):
    object: Dict[str, Any]

class WebhookEvent(BaseModel):
    id: str
    type: str
    data: EventData
    created: Optional[int] = None

# --- orders ---

class OrderItemRead(BaseModel):
    id: int
    product_id: str
    quantity: int
    price: int
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None
    delivery_option: Optional[str] = None
    status: str
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: str
    user_id: str
    stripe_session_id: str
    total_amount: int
    currency: str
    status: str
    shipping_address: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config: from_attributes = True

class OrderWithItems(OrderRead):
    items: List[OrderItemRead] = []

class SessionOrderLookup(BaseModel):
    success: bool
    message: str
    order: Optional[OrderRead] = None

class SendTestEmail(BaseModel):
    to: EmailStr
    subject: str = "Test Email from Order Service"
    body: str = "This is a test email from the checkout service."
