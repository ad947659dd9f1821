from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from decimal import Decimal

class PaymentCreateRequest(BaseModel):
    booking_id: int = Field(..., alias="bookingId")

    class Config:
        populate_by_name = True

class PaymentRequestResponse(BaseModel):
    """Checkout request for the payment gateway"""
    booking_id: int = Field(..., alias="bookingId")
    order_code: str = Field(..., alias="orderCode")
    amount: Decimal
    description: str
    expires_at: datetime = Field(..., alias="expiresAt")
    checkout_payload: Dict[str, Any] = Field(..., alias="checkoutPayload")

    class Config:
        populate_by_name = True

class WebhookAck(BaseModel):
    """Acknowledgement returned to the gateway"""
    success: bool
    message: str
    booking_id: Optional[int] = Field(None, alias="bookingId")
    status: Optional[str] = None

    class Config:
        populate_by_name = True
