"""Client-registered webhook delivery.

Delivery is at-most-once: every attempt is logged to ``webhook_logs`` and
failures are never retried from here.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import hashlib
import hmac
import json
import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session
from orderhub.domain.models import Order, Webhook, WebhookLog
from orderhub.infrastructure.config_provider import ClientProfile
from shared.core import get_logger

logger = get_logger(__name__)

ORDER_CREATED = "order.created"

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

def build_order_created_payload(order: Order, client: ClientProfile, actor_email: Optional[str]) -> Dict[str, Any]:
    return {
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "referenceNumber": order.reference_number,
            "trackingId": order.tracking_id,
            "name": order.name,
            "mobile": order.mobile,
            "address": order.address,
            "city": order.city,
            "state": order.state,
            "country": order.country,
            "pincode": order.pincode,
            "courierService": order.courier_service,
            "pickupLocation": order.pickup_location,
            "packageValue": order.package_value,
            "weight": order.weight,
            "totalItems": order.total_items,
            "isCod": order.is_cod,
            "codAmount": order.cod_amount,
            "resellerName": order.reseller_name,
            "resellerMobile": order.reseller_mobile,
            "createdAt": _iso(order.created_at),
            "updatedAt": _iso(order.updated_at),
            "delhiveryWaybillNumber": order.delhivery_waybill_number,
            "delhiveryOrderId": order.delhivery_order_id,
            "delhiveryApiStatus": order.delhivery_api_status,
        },
        "client": {
            "id": client.id,
            "companyName": client.company_name or client.id,
            "name": client.name or client.id,
            "email": client.email or actor_email,
        },
    }

def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

class WebhookDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        user_agent: str = "Scan2Ship-Webhook/1.0",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.user_agent = user_agent
        self.transport = transport

    def trigger(self, event: str, data: Dict[str, Any], client_id: str, order_id: Optional[int] = None) -> int:
        """Deliver ``event`` to every subscribed endpoint; returns the delivered count."""
        try:
            with self.session_factory() as db:
                hooks = db.scalars(
                    select(Webhook).where(Webhook.client_id == client_id, Webhook.is_active.is_(True))
                ).all()
        except Exception:
            logger.error(
                "Webhook lookup failed",
                exc_info=True,
                extra={'extra_fields': {'event': event, 'client_id': client_id, 'order_id': order_id}},
            )
            return 0

        relevant = [hook for hook in hooks if event in (hook.events or []) or "*" in (hook.events or [])]
        delivered = 0
        for hook in relevant:
            if self._send(hook, event, data, order_id):
                delivered += 1
        logger.info(
            "Webhooks triggered",
            extra={'extra_fields': {
                'event': event,
                'client_id': client_id,
                'order_id': order_id,
                'subscribed': len(relevant),
                'delivered': delivered,
            }},
        )
        return delivered

    def _send(self, hook: Webhook, event: str, data: Dict[str, Any], order_id: Optional[int]) -> bool:
        payload = {
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "orderId": order_id,
        }
        body = json.dumps(payload, default=str).encode()
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            **(hook.headers or {}),
        }
        if hook.secret:
            headers["X-Webhook-Signature"] = f"sha256={sign_payload(hook.secret, body)}"

        try:
            with httpx.Client(timeout=(hook.timeout_ms or 5000) / 1000, transport=self.transport) as http:
                response = http.post(hook.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(
                "Webhook delivery error",
                extra={'extra_fields': {'webhook_id': hook.id, 'url': hook.url, 'event': event, 'error': str(e)}},
            )
            self._log_attempt(hook.id, event, order_id, "failed", error_message=str(e))
            return False

        status = "success" if response.is_success else "failed"
        if not response.is_success:
            logger.warning(
                "Webhook delivery rejected",
                extra={'extra_fields': {'webhook_id': hook.id, 'url': hook.url, 'status_code': response.status_code}},
            )
        self._log_attempt(hook.id, event, order_id, status, response.status_code, response.text)
        return response.is_success

    def _log_attempt(self, webhook_id: int, event: str, order_id: Optional[int], status: str,
                     response_code: Optional[int] = None, response_body: Optional[str] = None,
                     error_message: Optional[str] = None) -> None:
        try:
            with self.session_factory() as db:
                db.add(WebhookLog(
                    webhook_id=webhook_id,
                    event_type=event,
                    order_id=order_id,
                    status=status,
                    response_code=response_code,
                    response_body=response_body[:1000] if response_body else None,
                    error_message=error_message,
                ))
                db.commit()
        except Exception:
            logger.error("Failed to log webhook attempt", exc_info=True,
                         extra={'extra_fields': {'webhook_id': webhook_id, 'event': event}})
