import json
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


ORDER_STATUSES = ("pending", "paid", "processing", "shipped", "delivered", "cancelled", "refunded")


def _decode_json_text(value):
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        return json.loads(stripped)
    return value


class OrderLine(BaseModel):
    id: Optional[str] = None
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    sku: Optional[str] = None
    image: Optional[str] = None


class ShippingAddress(BaseModel):
    name: Optional[str] = None
    street: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class OrderCreate(BaseModel):
    uid: Optional[str] = None
    cst_email: Optional[str] = None
    cst_name: Optional[str] = None
    tx: Optional[str] = None
    amount: float = Field(ge=0)
    subtotal: Optional[float] = None
    shipping: float = 0
    currency: str = "eur"
    method: str = "card"
    status: str = "pending"
    tracking: str = ""
    delivery_notes: Optional[str] = None
    ref: Optional[str] = None
    items: List[OrderLine] = Field(min_length=1)
    shipping_address: Optional[ShippingAddress] = None

    # Clients historically send these two fields pre-encoded as JSON strings
    @field_validator("items", "shipping_address", mode="before")
    @classmethod
    def _accept_json_strings(cls, value):
        return _decode_json_text(value)

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(exclude={"items", "shipping_address"})
        record["items"] = json.dumps([line.model_dump() for line in self.items])
        record["shipping_address"] = (
            json.dumps(self.shipping_address.model_dump()) if self.shipping_address else None
        )
        return record


class CheckoutRequest(BaseModel):
    order_data: OrderCreate
    email_payload: Optional[Dict[str, Any]] = None


class CartLine(BaseModel):
    id: str
    quantity: int = Field(default=1, ge=1)


class PaymentIntentRequest(BaseModel):
    amount: Optional[int] = None
    currency: str = "eur"
    email: Optional[str] = None
    payment_method_type: str = "card"
    items: Optional[List[CartLine]] = None
    # Shipping in minor units, added to a server-side cart total
    shipping: int = Field(default=0, ge=0)


class OrderUpdate(BaseModel):
    status: Optional[str] = None
    tracking: Optional[str] = None
    delivery_notes: Optional[str] = None
