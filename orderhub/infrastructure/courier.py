"""Delhivery courier gateway.

Books and cancels shipments behind a uniform success/failure contract.
Only one gateway integration exists; every other courier name is treated
as a manual, untracked courier.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import json
import re
import time
import httpx
from orderhub.infrastructure.config_provider import ConfigurationProvider, PickupLocationSettings
from shared.core import get_logger

logger = get_logger(__name__)

GATEWAY_NAME = "delhivery"

def matches_gateway(courier_service: Optional[str]) -> bool:
    return isinstance(courier_service, str) and courier_service.strip().lower() == GATEWAY_NAME

class CourierGatewayError(Exception):
    """The gateway could not be reached or returned an unusable answer."""

@dataclass
class CourierBooking:
    success: bool
    waybill_number: Optional[str] = None
    order_id: Optional[str] = None
    error: Optional[str] = None

@dataclass
class CourierCancellationResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None

_WHITESPACE = re.compile(r"\s+")

def sanitize_text(value: Any) -> str:
    """Collapse newlines, tabs and semicolons; the gateway rejects them."""
    if value is None or value == "":
        return ""
    text = re.sub(r"[\r\n\t;]", " ", str(value))
    return _WHITESPACE.sub(" ", text).strip()

def _as_text(value: Any, default: str = "") -> str:
    return default if value is None or value == "" else str(value)

class DelhiveryGateway:
    def __init__(
        self,
        config: ConfigurationProvider,
        base_url: str = "https://track.delhivery.com",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.transport = transport
        self.sleep = sleep

    def _api_key(self, pickup_location: str, client_id: str) -> tuple[str, Optional[PickupLocationSettings]]:
        location = self.config.pickup_location(client_id, pickup_location)
        api_key = location.delhivery_api_key if location else None
        if not api_key:
            raise CourierGatewayError(
                f"No Delhivery API key found for pickup location: {pickup_location} and client: {client_id}. "
                "Please configure the API key in the client settings for this pickup location."
            )
        if re.search(r"[^\x20-\x7E]", api_key):
            raise CourierGatewayError("Invalid API key: contains non-printable characters")
        return api_key, location

    def _request(self, method: str, endpoint: str, api_key: str, **kwargs) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Token {api_key}",
            "Accept": "application/json",
        }
        headers.update(kwargs.pop("headers", {}))
        url = f"{self.base_url}{endpoint}"
        attempt = 0
        while True:
            try:
                with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                    response = client.request(method, url, headers=headers, **kwargs)
                    response.raise_for_status()
                break
            except httpx.HTTPError as e:
                detail = str(e)
                if isinstance(e, httpx.HTTPStatusError):
                    detail = f"HTTP {e.response.status_code} - {e.response.text}"
                logger.warning(
                    "Delhivery request failed",
                    extra={'extra_fields': {
                        'endpoint': endpoint,
                        'attempt': attempt + 1,
                        'error': detail,
                    }},
                )
                if attempt >= self.max_retries:
                    raise CourierGatewayError(detail) from e
                attempt += 1
                self.sleep(self.backoff_seconds * attempt)
        try:
            return response.json()
        except ValueError as e:
            raise CourierGatewayError(f"Invalid JSON from Delhivery: {response.text[:200]}") from e

    def build_shipment(self, draft: Dict[str, Any], location: Optional[PickupLocationSettings]) -> Dict[str, Any]:
        """Merge order fields with the pickup location's defaults."""
        location = location or PickupLocationSettings(value=draft.get("pickup_location"), delhivery_api_key=None)
        is_cod = bool(draft.get("is_cod"))
        return {
            "name": sanitize_text(draft.get("name")),
            "add": sanitize_text(draft.get("address")),
            "pin": sanitize_text(draft.get("pincode")),
            "city": sanitize_text(draft.get("city")),
            "state": sanitize_text(draft.get("state")),
            "country": sanitize_text(draft.get("country")) or "India",
            "phone": sanitize_text(draft.get("phone") or draft.get("mobile")),
            "mobile": sanitize_text(draft.get("mobile")),
            "order": sanitize_text(draft.get("reference_number")) or f"Order-{int(time.time() * 1000)}",
            "payment_mode": "COD" if is_cod else "Prepaid",
            "cod_amount": _as_text(draft.get("cod_amount")) if is_cod else "",
            "total_amount": _as_text(draft.get("package_value")),
            "quantity": _as_text(draft.get("total_items")),
            "weight": _as_text(draft.get("weight"), "100"),
            "products_desc": sanitize_text(draft.get("product_description") or location.product_description),
            "hsn_code": sanitize_text(location.hsn_code),
            "return_add": sanitize_text(location.return_address),
            "return_pin": sanitize_text(location.return_pincode),
            "return_country": "India",
            "seller_name": sanitize_text(draft.get("reseller_name") or location.seller_name),
            "seller_add": sanitize_text(location.seller_address),
            "seller_gst_tin": sanitize_text(location.seller_gst),
            "seller_inv": sanitize_text(location.invoice_number),
            "seller_phone": sanitize_text(draft.get("reseller_mobile")),
            "waybill": _as_text(draft.get("tracking_id")),
            "shipment_length": str(location.shipment_length),
            "shipment_width": str(location.shipment_breadth),
            "shipment_height": str(location.shipment_height),
            "fragile_shipment": location.fragile_shipment,
            "shipping_mode": "Surface",
        }

    def create_order(self, draft: Dict[str, Any]) -> CourierBooking:
        """Book a shipment. Raises CourierGatewayError on transport failure."""
        client_id = draft.get("client_id")
        pickup_location = draft.get("pickup_location") or ""
        api_key, location = self._api_key(pickup_location, client_id)

        payload = {
            "shipments": [self.build_shipment(draft, location)],
            "pickup_location": {"name": pickup_location},
        }
        body = self._request(
            "POST",
            "/api/cmu/create.json",
            api_key,
            data={"format": "json", "data": json.dumps(payload)},
        )
        if not isinstance(body, dict):
            raise CourierGatewayError(f"Unexpected Delhivery response: {str(body)[:200]}")

        packages = body.get("packages")
        package = packages[0] if isinstance(packages, list) and packages and isinstance(packages[0], dict) else {}
        if body.get("success") is False or body.get("error") is True:
            remarks = package.get("remarks")
            if isinstance(remarks, list) and remarks:
                detail = ", ".join(str(r) for r in remarks)
            else:
                detail = body.get("rmk") or "Delhivery API returned an error"
            logger.warning(
                "Delhivery rejected booking",
                extra={'extra_fields': {
                    'client_id': client_id,
                    'reference_number': draft.get("reference_number"),
                    'package_status': package.get("status"),
                    'error': detail,
                }},
            )
            return CourierBooking(success=False, error=f"Delhivery API Error: {detail}")

        waybill = package.get("waybill")
        if not waybill:
            return CourierBooking(success=False, error="Delhivery API returned no waybill")
        return CourierBooking(success=True, waybill_number=str(waybill), order_id=package.get("refnum"))

    def cancel_order(self, tracking_id: str, pickup_location: str, client_id: str) -> CourierCancellationResult:
        try:
            api_key, _ = self._api_key(pickup_location, client_id)
            self._request(
                "POST",
                "/api/p/edit",
                api_key,
                json={"waybill": tracking_id, "cancellation": "true"},
            )
        except CourierGatewayError as e:
            logger.warning(
                "Delhivery cancellation failed",
                extra={'extra_fields': {'client_id': client_id, 'waybill': tracking_id, 'error': str(e)}},
            )
            return CourierCancellationResult(success=False, error=str(e))
        except Exception as e:
            logger.error(
                "Unexpected error cancelling Delhivery shipment",
                exc_info=True,
                extra={'extra_fields': {'client_id': client_id, 'waybill': tracking_id}},
            )
            return CourierCancellationResult(success=False, error=str(e) or type(e).__name__)
        return CourierCancellationResult(success=True, message="Order cancelled successfully in Delhivery")
