from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Text, Numeric, DateTime, Boolean, Integer, JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint
from datetime import datetime, timezone
from typing import Optional

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

class Base(DeclarativeBase):
    pass

class Client(Base):
    __tablename__ = "clients"
    # Tenant ids are opaque strings issued by the auth subsystem
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    company_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class SubGroup(Base):
    __tablename__ = "sub_groups"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), ForeignKey("clients.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))

class UserSubGroup(Base):
    __tablename__ = "user_sub_groups"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    sub_group_id: Mapped[int] = mapped_column(ForeignKey("sub_groups.id"))

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_client_reference", "client_id", "reference_number"),
        Index("idx_orders_client_created", "client_id", "created_at"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    reference_number: Mapped[str] = mapped_column(String(100))

    # Recipient
    name: Mapped[str] = mapped_column(String(200))
    mobile: Mapped[str] = mapped_column(String(20))
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[str] = mapped_column(Text)
    city: Mapped[str] = mapped_column(String(100))
    state: Mapped[str] = mapped_column(String(100))
    country: Mapped[str] = mapped_column(String(100))
    pincode: Mapped[str] = mapped_column(String(20))

    # Shipment
    courier_service: Mapped[str] = mapped_column(String(50))
    pickup_location: Mapped[str] = mapped_column(String(200))
    package_value: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    weight: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    total_items: Mapped[int] = mapped_column(Integer)
    is_cod: Mapped[bool] = mapped_column(Boolean, default=False)
    cod_amount: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    reseller_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    reseller_mobile: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Courier linkage, filled once after a successful booking
    tracking_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    delhivery_waybill_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delhivery_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delhivery_api_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    tracking_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_delhivery_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Attribution
    created_by: Mapped[str] = mapped_column(String(64))
    sub_group: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # JSON list of {sku, quantity} reserved in the catalog app
    products: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def order_number(self) -> str:
        return f"ORDER-{self.id}"

class ClientOrderConfig(Base):
    __tablename__ = "client_order_configs"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), unique=True)
    enable_reference_prefix: Mapped[bool] = mapped_column(Boolean, default=True)
    reference_prefix: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

class PickupLocation(Base):
    __tablename__ = "pickup_locations"
    __table_args__ = (UniqueConstraint("client_id", "value", name="uq_pickup_locations_client_value"),)
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    value: Mapped[str] = mapped_column(String(200))
    label: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delhivery_api_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    product_description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    return_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    return_pincode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    seller_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    seller_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seller_gst: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipment_length: Mapped[int] = mapped_column(Integer, default=10)
    shipment_breadth: Mapped[int] = mapped_column(Integer, default=10)
    shipment_height: Mapped[int] = mapped_column(Integer, default=10)
    fragile_shipment: Mapped[bool] = mapped_column(Boolean, default=False)

class CrossAppMapping(Base):
    __tablename__ = "cross_app_mappings"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    catalog_client_id: Mapped[str] = mapped_column(String(100))
    catalog_api_key: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class ClientCredits(Base):
    __tablename__ = "client_credits"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_client_credits_balance_non_negative"),)
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), unique=True)
    balance: Mapped[int] = mapped_column(Integer, default=0)
    total_added: Mapped[int] = mapped_column(Integer, default=0)
    total_used: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

class ClientCreditCost(Base):
    __tablename__ = "client_credit_costs"
    __table_args__ = (UniqueConstraint("client_id", "feature", name="uq_client_credit_costs_feature"),)
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64))
    feature: Mapped[str] = mapped_column(String(30))
    cost: Mapped[int] = mapped_column(Integer)

class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(10))  # ADD, DEDUCT
    amount: Mapped[int] = mapped_column(Integer)
    balance: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(String(255))
    feature: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    # no FK: the transaction outlives a deleted order
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class OwedCreditDebit(Base):
    """A debit that failed at order time and still has to be settled."""
    __tablename__ = "owed_credit_debits"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    order_id: Mapped[int] = mapped_column(Integer)
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

class Webhook(Base):
    __tablename__ = "webhooks"
    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(100))
    url: Mapped[str] = mapped_column(String(500))
    events: Mapped[list] = mapped_column(JSON, default=list)
    secret: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    headers: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    timeout_ms: Mapped[int] = mapped_column(Integer, default=5000)

class WebhookLog(Base):
    __tablename__ = "webhook_logs"
    id: Mapped[int] = mapped_column(primary_key=True)
    webhook_id: Mapped[int] = mapped_column(ForeignKey("webhooks.id", ondelete="CASCADE"))
    event_type: Mapped[str] = mapped_column(String(50))
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20))
    response_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    response_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class OrderAnalytics(Base):
    __tablename__ = "order_analytics"
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer)
    client_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    creation_pattern: Mapped[str] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(50), index=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
