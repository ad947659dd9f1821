"""Payment gateway wire format: checksums, order codes and status codes."""

import calendar
import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Dict, Optional

from bus_booking.bookings.schemas import PaymentStatus
from bus_booking.config import settings
from bus_booking.exceptions import ValidationError
from bus_booking.utils import utcnow

# Gateway status words and numeric result codes
GATEWAY_STATUS_MAP = {
    "PAID": PaymentStatus.PAID,
    "00": PaymentStatus.PAID,
    "CANCELLED": PaymentStatus.CANCELLED,
    "01": PaymentStatus.FAILED,
    "EXPIRED": PaymentStatus.EXPIRED,
    "02": PaymentStatus.EXPIRED,
    "PENDING": PaymentStatus.PENDING,
    "PROCESSING": PaymentStatus.PENDING,
}

# The gateway rejects longer descriptions
MAX_DESCRIPTION_LENGTH = 25

ORDER_CODE_SUFFIX_MOD = 10 ** 6


def _signature_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return str(value)


def build_signature_payload(data: Dict[str, Any]) -> str:
    """``k=v&k=v`` over the keys in alphabetical order"""
    return "&".join(f"{key}={_signature_value(data[key])}" for key in sorted(data))


def create_signature(data: Dict[str, Any], checksum_key: Optional[str] = None) -> str:
    key = checksum_key or settings.PAYMENT_CHECKSUM_KEY
    return hmac.new(
        key.encode("utf-8"),
        build_signature_payload(data).encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def verify_signature(data: Dict[str, Any], signature: Optional[str], checksum_key: Optional[str] = None) -> bool:
    if not signature or not isinstance(data, dict):
        return False
    expected = create_signature(data, checksum_key)
    return hmac.compare_digest(expected, str(signature))


def map_gateway_status(value: Any) -> PaymentStatus:
    """Translate a gateway status word or result code to a payment status"""
    key = str(value).strip().upper() if value is not None else ""
    if key not in GATEWAY_STATUS_MAP:
        raise ValidationError(f"Unknown payment status '{value}'")
    return GATEWAY_STATUS_MAP[key]


def generate_order_code(booking_id: int, now: Optional[datetime] = None) -> str:
    """Booking id followed by the last six digits of the epoch milliseconds.

    The fixed-width suffix keeps codes of different bookings distinct.
    """
    moment = now or utcnow()
    millis = calendar.timegm(moment.utctimetuple()) * 1000 + moment.microsecond // 1000
    return f"{booking_id}{millis % ORDER_CODE_SUFFIX_MOD:06d}"


def province_code(name: Optional[str]) -> str:
    if not name:
        return ""
    return "".join(word[0].upper() for word in name.split() if word)


def build_checkout_payload(
    order_code: str,
    amount: int,
    description: str,
    expired_at: int
) -> Dict[str, Any]:
    """Signed checkout request, ready to be posted to the gateway"""
    payload = {
        "orderCode": int(order_code),
        "amount": amount,
        "description": description[:MAX_DESCRIPTION_LENGTH],
        "returnUrl": f"{settings.BACKEND_URL}{settings.API_V1_STR}/payments/callback/success?orderCode={order_code}",
        "cancelUrl": f"{settings.BACKEND_URL}{settings.API_V1_STR}/payments/callback/cancel?orderCode={order_code}",
    }
    signed_fields = {key: payload[key] for key in ("amount", "cancelUrl", "description", "orderCode", "returnUrl")}
    payload["signature"] = create_signature(signed_fields)
    payload["expiredAt"] = expired_at
    return payload
