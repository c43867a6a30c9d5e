import re
from typing import Any, Iterable, List, Mapping
from orderhub.application.errors import OrderValidationError

REQUIRED_FIELDS = (
    "name",
    "mobile",
    "address",
    "city",
    "state",
    "country",
    "pincode",
    "courier_service",
    "pickup_location",
    "package_value",
    "weight",
    "total_items",
)

_NATIONAL_MOBILE = re.compile(r"^[6-9]\d{9}$")

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    return False

def require_fields(payload: Mapping[str, Any]) -> None:
    for field in REQUIRED_FIELDS:
        if _is_blank(payload.get(field)):
            raise OrderValidationError(f"Missing required field: {field}", reason="missing field", field=field)

def is_valid_mobile(mobile: Any) -> bool:
    """Indian mobile: 10 digits starting 6-9, optionally behind 91 or 910."""
    if mobile is None:
        return False
    digits = re.sub(r"\D", "", str(mobile))
    if len(digits) == 10:
        return bool(_NATIONAL_MOBILE.match(digits))
    if len(digits) == 12 and digits.startswith("91"):
        return bool(_NATIONAL_MOBILE.match(digits[2:]))
    if len(digits) == 13 and digits.startswith("91"):
        return bool(_NATIONAL_MOBILE.match(digits[3:]))
    return False

def validate_mobiles(mobile: Any, reseller_mobile: Any = None) -> None:
    if not is_valid_mobile(mobile):
        raise OrderValidationError(
            "Mobile number must be exactly 10 digits and start with 6, 7, 8, or 9",
            reason="invalid mobile",
            field="mobile",
        )
    if reseller_mobile and not is_valid_mobile(reseller_mobile):
        raise OrderValidationError(
            "Reseller mobile number must be exactly 10 digits and start with 6, 7, 8, or 9",
            reason="invalid reseller mobile",
            field="reseller_mobile",
        )

def parse_order_ids(order_ids: Iterable[Any]) -> List[int]:
    """All ids must be positive integers, otherwise the whole batch is rejected."""
    if order_ids is None or isinstance(order_ids, (str, bytes)):
        raise OrderValidationError(
            "orderIds array is required and must contain at least one order ID",
            reason="invalid order ids",
        )
    raw = list(order_ids)
    if not raw:
        raise OrderValidationError(
            "orderIds array is required and must contain at least one order ID",
            reason="invalid order ids",
        )
    parsed = []
    for value in raw:
        if isinstance(value, bool):
            parsed = None
            break
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and value.strip().isdigit():
            number = int(value.strip())
        else:
            parsed = None
            break
        if number <= 0:
            parsed = None
            break
        parsed.append(number)
    if parsed is None:
        raise OrderValidationError("All order IDs must be valid positive integers", reason="invalid order ids")
    # keep first-seen order, drop repeats
    return list(dict.fromkeys(parsed))
