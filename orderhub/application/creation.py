"""Order creation workflow.

Validation and the credit check happen before any side effect. A courier
booking, when required, happens before the order row exists so a rejected
booking leaves nothing behind. Everything after the order is committed is
best-effort: a failed debit is parked for settlement, analytics and webhooks
are dispatched through the scheduler and never affect the response.
"""

from typing import Any, Callable, Mapping, Optional
import json
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from orderhub.application import reference_numbers
from orderhub.application.errors import (
    CourierBookingError,
    InsufficientCreditsError,
    OrderWorkflowInternalError,
)
from orderhub.application.schemas import CreatedOrder, OrderCreateResponse
from orderhub.application.scope import AccessScope, Actor
from orderhub.application.validation import require_fields, validate_mobiles
from orderhub.domain.models import Order, utcnow
from orderhub.infrastructure.analytics import AnalyticsRecorder
from orderhub.infrastructure.config_provider import ConfigurationProvider
from orderhub.infrastructure.courier import CourierBooking, CourierGatewayError, DelhiveryGateway, matches_gateway
from orderhub.infrastructure.credits import CreditLedger, CreditLedgerError
from orderhub.infrastructure.webhooks import ORDER_CREATED, WebhookDispatcher, build_order_created_payload
from shared.core import get_logger

logger = get_logger(__name__)

Scheduler = Callable[..., Any]

MAX_REFERENCE_ATTEMPTS = 5

def run_inline(func: Callable[..., Any], *args, **kwargs) -> None:
    func(*args, **kwargs)

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

class OrderCreationService:
    def __init__(
        self,
        db: Session,
        config: ConfigurationProvider,
        courier: DelhiveryGateway,
        credits: CreditLedger,
        webhooks: WebhookDispatcher,
        analytics: AnalyticsRecorder,
        scheduler: Optional[Scheduler] = None,
    ):
        self.db = db
        self.config = config
        self.courier = courier
        self.credits = credits
        self.webhooks = webhooks
        self.analytics = analytics
        self.scheduler = scheduler or run_inline

    def create(self, actor: Actor, scope: AccessScope, payload: Mapping[str, Any]) -> OrderCreateResponse:
        require_fields(payload)
        validate_mobiles(payload.get("mobile"), payload.get("reseller_mobile"))
        self._check_credits(actor.client_id)

        reference_number = self._resolve_reference(actor.client_id, payload)
        sub_group = scope.sub_group if scope.restricted else None
        supplied_tracking_id = _text(payload.get("waybill")) or _text(payload.get("tracking_id"))

        booking = None
        if matches_gateway(payload.get("courier_service")) and not payload.get("skip_tracking"):
            booking = self._book(actor.client_id, reference_number, supplied_tracking_id, payload)
        elif matches_gateway(payload.get("courier_service")):
            logger.info(
                "Skipping courier booking, tracking disabled for order",
                extra={'extra_fields': {'client_id': actor.client_id, 'reference_number': reference_number}},
            )

        order = self._persist(actor, payload, reference_number, sub_group, supplied_tracking_id, booking)

        try:
            self.credits.deduct_order_credits(actor.client_id, actor.user_id, order.id)
        except (CreditLedgerError, SQLAlchemyError) as e:
            logger.error(
                "Failed to deduct credits for order",
                extra={'extra_fields': {
                    'client_id': actor.client_id,
                    'order_id': order.id,
                    'step': 'credit_debit',
                    'error': str(e),
                }},
            )
            self._record_owed_debit(actor, order.id, str(e))

        self._schedule(
            self.analytics.record_order_creation,
            order.id,
            actor.client_id,
            actor.user_id,
            payload.get("creation_pattern"),
            payload.get("courier_service"),
        )

        stored = self.db.scalar(
            select(Order).where(Order.id == order.id).execution_options(populate_existing=True)
        )
        if stored is None:
            logger.error(
                "Created order could not be re-read",
                extra={'extra_fields': {'client_id': actor.client_id, 'order_id': order.id}},
            )
            raise OrderWorkflowInternalError("Failed to fetch updated order data")

        self._dispatch_webhook(actor, stored)

        logger.info(
            "Order created",
            extra={'extra_fields': {
                'client_id': actor.client_id,
                'order_id': stored.id,
                'reference_number': stored.reference_number,
                'tracking_id': stored.tracking_id,
                'courier_service': stored.courier_service,
            }},
        )
        return OrderCreateResponse(order=CreatedOrder(
            id=stored.id,
            order_number=stored.order_number,
            reference_number=stored.reference_number,
            tracking_id=stored.tracking_id,
            courier_status=stored.tracking_status,
        ))

    def _check_credits(self, client_id: str) -> None:
        try:
            cost = self.credits.order_credit_cost(client_id)
            sufficient = self.credits.has_sufficient_credits(client_id, cost)
        except (CreditLedgerError, SQLAlchemyError) as e:
            logger.error(
                "Credit check failed",
                extra={'extra_fields': {'client_id': client_id, 'error': str(e)}},
            )
            raise OrderWorkflowInternalError("Failed to check credits") from e
        if not sufficient:
            raise InsufficientCreditsError(
                "Insufficient credits",
                details=f"Order creation requires {cost} credit(s). Please recharge your credits.",
            )

    def _resolve_reference(self, client_id: str, payload: Mapping[str, Any]) -> str:
        policy = self.config.reference_policy(client_id)
        mobile = str(payload.get("mobile"))
        supplied = _text(payload.get("reference_number"))
        if supplied:
            return reference_numbers.generate(mobile, supplied, policy.enabled, policy.prefix)

        for _ in range(MAX_REFERENCE_ATTEMPTS):
            candidate = reference_numbers.generate(mobile, None, policy.enabled, policy.prefix)
            taken = self.db.scalar(
                select(Order.id)
                .where(Order.client_id == client_id, Order.reference_number == candidate)
                .limit(1)
            )
            if taken is None:
                return candidate
            logger.warning(
                "Generated reference number already in use, regenerating",
                extra={'extra_fields': {'client_id': client_id, 'reference_number': candidate}},
            )
        logger.error(
            "No free reference number after retries, using a duplicate",
            extra={'extra_fields': {
                'client_id': client_id,
                'reference_number': candidate,
                'attempts': MAX_REFERENCE_ATTEMPTS,
            }},
        )
        return candidate

    def _book(self, client_id: str, reference_number: str, tracking_id: Optional[str],
              payload: Mapping[str, Any]) -> CourierBooking:
        draft = dict(payload)
        draft.update({
            "client_id": client_id,
            "reference_number": reference_number,
            "tracking_id": tracking_id,
        })
        try:
            booking = self.courier.create_order(draft)
        except Exception as e:
            # anything raised while booking is reported as a failed booking
            logger.error(
                "Courier booking raised",
                exc_info=not isinstance(e, CourierGatewayError),
                extra={'extra_fields': {
                    'client_id': client_id,
                    'reference_number': reference_number,
                    'step': 'courier_booking',
                    'error': str(e),
                }},
            )
            raise CourierBookingError("Courier booking failed", upstream_error=str(e) or type(e).__name__) from e
        if not booking.success:
            logger.warning(
                "Courier booking rejected, order not created",
                extra={'extra_fields': {
                    'client_id': client_id,
                    'reference_number': reference_number,
                    'error': booking.error,
                }},
            )
            raise CourierBookingError(
                "Courier booking failed",
                upstream_error=booking.error or "Failed to create order with courier",
            )
        return booking

    def _persist(self, actor: Actor, payload: Mapping[str, Any], reference_number: str,
                 sub_group: Optional[str], tracking_id: Optional[str],
                 booking: Optional[CourierBooking]) -> Order:
        products = payload.get("products")
        is_cod = bool(payload.get("is_cod"))
        order = Order(
            client_id=actor.client_id,
            reference_number=reference_number,
            name=str(payload["name"]).strip(),
            mobile=str(payload["mobile"]).strip(),
            phone=_text(payload.get("phone")),
            address=str(payload["address"]).strip(),
            city=str(payload["city"]).strip(),
            state=str(payload["state"]).strip(),
            country=str(payload["country"]).strip(),
            pincode=str(payload["pincode"]).strip(),
            courier_service=str(payload["courier_service"]).strip(),
            pickup_location=str(payload["pickup_location"]).strip(),
            package_value=float(payload["package_value"]),
            weight=float(payload["weight"]),
            total_items=int(payload["total_items"]),
            is_cod=is_cod,
            cod_amount=float(payload["cod_amount"]) if is_cod and payload.get("cod_amount") else None,
            reseller_name=_text(payload.get("reseller_name")),
            reseller_mobile=_text(payload.get("reseller_mobile")),
            tracking_id=tracking_id,
            tracking_status=None if tracking_id else "pending",
            created_by=actor.user_id,
            sub_group=sub_group,
            products=json.dumps(products) if isinstance(products, list) else None,
        )
        try:
            self.db.add(order)
            self.db.flush()
            if booking is not None:
                # linkage is written in the same transaction as the row itself
                order.tracking_id = booking.waybill_number
                order.delhivery_waybill_number = booking.waybill_number
                order.delhivery_order_id = booking.order_id
                order.delhivery_api_status = "success"
                order.tracking_status = "manifested"
                order.last_delhivery_attempt = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to persist order",
                exc_info=True,
                extra={'extra_fields': {
                    'client_id': actor.client_id,
                    'reference_number': reference_number,
                    'step': 'persist',
                    'waybill': booking.waybill_number if booking else None,
                }},
            )
            if booking is not None:
                self._cancel_orphaned_booking(actor.client_id, booking, str(payload["pickup_location"]))
            raise OrderWorkflowInternalError("Failed to create order") from e
        return order

    def _cancel_orphaned_booking(self, client_id: str, booking: CourierBooking, pickup_location: str) -> None:
        result = self.courier.cancel_order(booking.waybill_number, pickup_location, client_id)
        logger.warning(
            "Cancelled courier booking for order that failed to persist",
            extra={'extra_fields': {
                'client_id': client_id,
                'waybill': booking.waybill_number,
                'cancelled': result.success,
                'error': result.error,
            }},
        )

    def _record_owed_debit(self, actor: Actor, order_id: int, error: str) -> None:
        try:
            self.credits.record_owed_debit(actor.client_id, actor.user_id, order_id, error)
        except SQLAlchemyError:
            logger.error(
                "Failed to record owed credit debit",
                exc_info=True,
                extra={'extra_fields': {'client_id': actor.client_id, 'order_id': order_id}},
            )

    def _dispatch_webhook(self, actor: Actor, order: Order) -> None:
        try:
            client = self.config.client_profile(actor.client_id)
            data = build_order_created_payload(order, client, actor.email)
        except SQLAlchemyError:
            logger.error(
                "Failed to build webhook payload",
                exc_info=True,
                extra={'extra_fields': {'client_id': actor.client_id, 'order_id': order.id, 'step': 'webhook'}},
            )
            return
        self._schedule(self.webhooks.trigger, ORDER_CREATED, data, actor.client_id, order.id)

    def _schedule(self, func: Callable[..., Any], *args) -> None:
        try:
            self.scheduler(func, *args)
        except Exception:
            logger.error(
                "Background task failed",
                exc_info=True,
                extra={'extra_fields': {'task': getattr(func, "__name__", repr(func))}},
            )
