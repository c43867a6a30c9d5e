from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from datetime import date, datetime, time
from typing import Optional
from orderhub.api.deps import (
    get_actor,
    get_analytics_recorder,
    get_config_provider,
    get_courier,
    get_credit_ledger,
    get_inventory_restorer,
    get_scope,
    get_webhook_dispatcher,
)
from orderhub.application.creation import OrderCreationService
from orderhub.application.deletion import OrderDeletionService
from orderhub.application.errors import OrderWorkflowError
from orderhub.application.schemas import (
    OrderCreate,
    OrderCreateResponse,
    OrderDeleteRequest,
    OrderDeleteResponse,
    OrderListResponse,
    OrderRead,
    Pagination,
)
from orderhub.application.scope import AccessScope, Actor
from orderhub.domain.models import Order
from orderhub.infrastructure.analytics import AnalyticsRecorder
from orderhub.infrastructure.config_provider import ConfigurationProvider
from orderhub.infrastructure.courier import DelhiveryGateway
from orderhub.infrastructure.credits import CreditLedger
from orderhub.infrastructure.db import get_db
from orderhub.infrastructure.inventory import InventoryRestorer
from orderhub.infrastructure.webhooks import WebhookDispatcher

router = APIRouter(prefix="/orders", tags=["orders"])

def _http_error(e: OrderWorkflowError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())

@router.post("", response_model=OrderCreateResponse, status_code=201)
def create_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    scope: AccessScope = Depends(get_scope),
    db: Session = Depends(get_db),
    config: ConfigurationProvider = Depends(get_config_provider),
    courier: DelhiveryGateway = Depends(get_courier),
    credits: CreditLedger = Depends(get_credit_ledger),
    webhooks: WebhookDispatcher = Depends(get_webhook_dispatcher),
    analytics: AnalyticsRecorder = Depends(get_analytics_recorder),
):
    service = OrderCreationService(
        db, config, courier, credits, webhooks, analytics,
        scheduler=background_tasks.add_task,
    )
    try:
        return service.create(actor, scope, payload.model_dump())
    except OrderWorkflowError as e:
        raise _http_error(e) from e

@router.delete("", response_model=OrderDeleteResponse)
def delete_orders(
    payload: OrderDeleteRequest,
    actor: Actor = Depends(get_actor),
    scope: AccessScope = Depends(get_scope),
    db: Session = Depends(get_db),
    config: ConfigurationProvider = Depends(get_config_provider),
    courier: DelhiveryGateway = Depends(get_courier),
    inventory: InventoryRestorer = Depends(get_inventory_restorer),
):
    """Delete a batch of orders, cancelling shipments and restoring stock first."""
    try:
        return OrderDeletionService(db, config, courier, inventory).delete(actor, scope, payload.order_ids)
    except OrderWorkflowError as e:
        raise _http_error(e) from e

@router.get("", response_model=OrderListResponse)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    from_date: Optional[date] = Query(None, alias="fromDate"),
    to_date: Optional[date] = Query(None, alias="toDate"),
    pickup_location: Optional[str] = Query(None, alias="pickupLocation"),
    courier_service: Optional[str] = Query(None, alias="courierService"),
    tracking_status: Optional[str] = Query(None, alias="trackingStatus"),
    scope: AccessScope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """List visible orders, newest first."""
    stmt = scope.apply(select(Order))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Order.name.ilike(pattern),
            Order.mobile.ilike(pattern),
            Order.tracking_id.ilike(pattern),
            Order.reference_number.ilike(pattern),
        ))
    if from_date:
        stmt = stmt.where(Order.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        stmt = stmt.where(Order.created_at <= datetime.combine(to_date, time.max))
    if pickup_location:
        stmt = stmt.where(Order.pickup_location == pickup_location)
    if courier_service:
        stmt = stmt.where(Order.courier_service == courier_service)
    if tracking_status:
        stmt = stmt.where(Order.tracking_status == tracking_status)

    total = db.scalar(select(func.count()).select_from(stmt.subquery()))
    orders = db.scalars(
        stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return OrderListResponse(
        orders=[OrderRead.model_validate(o) for o in orders],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit),
    )

@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, scope: AccessScope = Depends(get_scope), db: Session = Depends(get_db)):
    order = db.scalar(scope.apply(select(Order).where(Order.id == order_id)))
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderRead.model_validate(order)
