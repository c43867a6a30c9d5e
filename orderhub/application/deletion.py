"""Batch order deletion with best-effort compensations.

The batch is all-or-nothing at the database level. Courier cancellations and
inventory restorations run first, independently per order; their outcomes
are reported but never block the delete.
"""

from typing import Any, Iterable, List, Sequence
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from orderhub.application.errors import (
    OrdersNotFoundError,
    OrdersNotPermittedError,
    OrderWorkflowInternalError,
)
from orderhub.application.schemas import (
    CourierCancellation,
    DeletedOrder,
    InventoryRestoration,
    OrderDeleteResponse,
)
from orderhub.application.scope import AccessScope, Actor
from orderhub.application.validation import parse_order_ids
from orderhub.domain.models import Order
from orderhub.infrastructure.config_provider import ClientProfile, ConfigurationProvider
from orderhub.infrastructure.courier import DelhiveryGateway, matches_gateway
from orderhub.infrastructure.inventory import (
    InventoryRestoreError,
    InventoryRestorer,
    build_restore_items,
    parse_products,
)
from shared.core import get_logger

logger = get_logger(__name__)

class OrderDeletionService:
    def __init__(
        self,
        db: Session,
        config: ConfigurationProvider,
        courier: DelhiveryGateway,
        inventory: InventoryRestorer,
    ):
        self.db = db
        self.config = config
        self.courier = courier
        self.inventory = inventory

    def delete(self, actor: Actor, scope: AccessScope, order_ids: Iterable[Any]) -> OrderDeleteResponse:
        ids = parse_order_ids(order_ids)
        orders = self._fetch(scope, ids)

        cancellations = self._cancel_shipments(orders)
        restorations = self._restore_inventory(actor, orders)

        deleted = [
            DeletedOrder(id=o.id, name=o.name, mobile=o.mobile, tracking_id=o.tracking_id)
            for o in orders
        ]
        try:
            self.db.execute(
                delete(Order)
                .where(Order.id.in_(ids), Order.client_id == scope.client_id)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to delete orders",
                exc_info=True,
                extra={'extra_fields': {'client_id': actor.client_id, 'order_ids': ids, 'step': 'delete'}},
            )
            raise OrderWorkflowInternalError("Failed to delete orders") from e

        logger.info(
            "Orders deleted",
            extra={'extra_fields': {
                'client_id': actor.client_id,
                'order_ids': ids,
                'cancellations': len(cancellations),
                'restorations': len(restorations),
            }},
        )
        return OrderDeleteResponse(
            message=f"Successfully deleted {len(deleted)} orders",
            deleted_count=len(deleted),
            deleted_orders=deleted,
            courier_cancellations=cancellations,
            inventory_restorations=restorations,
        )

    def _fetch(self, scope: AccessScope, ids: List[int]) -> Sequence[Order]:
        in_tenant = self.db.scalars(
            select(Order).where(Order.id.in_(ids), Order.client_id == scope.client_id).order_by(Order.id)
        ).all()
        if len(in_tenant) != len(ids):
            if scope.restricted:
                raise OrdersNotFoundError("Some orders not found or you do not have permission to delete them")
            raise OrdersNotFoundError("Some orders not found or do not belong to your client")
        if not all(scope.permits(order) for order in in_tenant):
            raise OrdersNotPermittedError("You do not have permission to delete some of these orders")
        return in_tenant

    def _cancel_shipments(self, orders: Sequence[Order]) -> List[CourierCancellation]:
        outcomes = []
        for order in orders:
            if not (matches_gateway(order.courier_service) and order.tracking_id):
                continue
            try:
                result = self.courier.cancel_order(order.tracking_id, order.pickup_location or "", order.client_id)
            except Exception as e:
                logger.error(
                    "Error cancelling courier shipment",
                    exc_info=True,
                    extra={'extra_fields': {
                        'client_id': order.client_id,
                        'order_id': order.id,
                        'waybill': order.tracking_id,
                        'step': 'courier_cancellation',
                        'error': str(e),
                    }},
                )
                outcomes.append(CourierCancellation(
                    order_id=order.id,
                    waybill=order.tracking_id,
                    success=False,
                    message="Error cancelling courier shipment",
                ))
                continue
            if not result.success:
                logger.warning(
                    "Courier cancellation failed",
                    extra={'extra_fields': {
                        'client_id': order.client_id,
                        'order_id': order.id,
                        'waybill': order.tracking_id,
                        'error': result.error,
                    }},
                )
            outcomes.append(CourierCancellation(
                order_id=order.id,
                waybill=order.tracking_id,
                success=result.success,
                message=result.message or result.error,
            ))
        return outcomes

    def _restore_inventory(self, actor: Actor, orders: Sequence[Order]) -> List[InventoryRestoration]:
        outcomes = []
        with_products = [o for o in orders if o.products and o.products.strip() not in ("", "[]")]
        if not with_products:
            return outcomes

        try:
            client = self.config.client_profile(actor.client_id)
            credentials = self.config.catalog_credentials(actor.client_id)
        except Exception:
            logger.error(
                "Failed to load catalog settings for inventory restoration",
                exc_info=True,
                extra={'extra_fields': {'client_id': actor.client_id}},
            )
            client = ClientProfile(id=actor.client_id, name=None, company_name=None, email=None, slug=None)
            credentials = None

        for order in with_products:
            try:
                products = parse_products(order.products)
            except ValueError as e:
                logger.error(
                    "Could not parse order products",
                    extra={'extra_fields': {'client_id': order.client_id, 'order_id': order.id, 'error': str(e)}},
                )
                outcomes.append(InventoryRestoration(order_id=order.id, success=False,
                                                     error="Invalid product data on order"))
                continue
            if not products:
                continue
            if credentials is None:
                logger.info(
                    "No catalog credentials, skipping inventory restoration",
                    extra={'extra_fields': {'client_id': order.client_id, 'order_id': order.id}},
                )
                outcomes.append(InventoryRestoration(order_id=order.id, success=False,
                                                     error="No catalog credentials configured"))
                continue
            items = build_restore_items(products)
            if not items:
                outcomes.append(InventoryRestoration(order_id=order.id, success=False,
                                                     error="No valid SKUs found for inventory restoration"))
                continue
            try:
                restored = self.inventory.restore(order.id, client, items, credentials)
            except Exception as e:
                logger.error(
                    "Inventory restoration failed",
                    exc_info=not isinstance(e, InventoryRestoreError),
                    extra={'extra_fields': {
                        'client_id': order.client_id,
                        'order_id': order.id,
                        'step': 'inventory_restoration',
                        'error': str(e),
                    }},
                )
                outcomes.append(InventoryRestoration(order_id=order.id, success=False, error=str(e) or type(e).__name__))
                continue
            outcomes.append(InventoryRestoration(order_id=order.id, success=True, restored_items=restored))
        return outcomes
