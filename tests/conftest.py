import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

import json
import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orderhub.application.creation import OrderCreationService
from orderhub.application.deletion import OrderDeletionService
from orderhub.application.scope import AccessScope, Actor
from orderhub.domain.models import (
    Base,
    Client,
    ClientCredits,
    CrossAppMapping,
    Order,
    PickupLocation,
    SubGroup,
    UserSubGroup,
)
from orderhub.infrastructure.analytics import AnalyticsRecorder
from orderhub.infrastructure.auth import create_access_token
from orderhub.infrastructure.config_provider import ConfigurationProvider
from orderhub.infrastructure.courier import DelhiveryGateway
from orderhub.infrastructure.credits import CreditLedger
from orderhub.infrastructure.inventory import InventoryRestorer
from orderhub.infrastructure.webhooks import WebhookDispatcher

TENANT = "client-1"
OTHER_TENANT = "client-2"
PICKUP = "Main Warehouse"
COURIER_URL = "https://courier.test"
CATALOG_URL = "https://catalog.test"

class FakeCourierAPI:
    """Delhivery stand-in served through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.create_status = 200
        self.create_response = {
            "success": True,
            "packages": [{"waybill": "WB123", "refnum": "DL-ORD-1", "status": "Success"}],
        }
        self.cancel_status = 200
        self.cancel_response = {"status": True, "remark": "Cancelled"}
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.url.path == "/api/cmu/create.json":
            return httpx.Response(self.create_status, json=self.create_response)
        if request.url.path == "/api/p/edit":
            return httpx.Response(self.cancel_status, json=self.cancel_response)
        return httpx.Response(404, json={"error": "unknown endpoint"})

    def paths(self):
        return [r.url.path for r in self.requests]

class FakeCatalogAPI:
    def __init__(self):
        self.requests = []
        self.status = 200
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": self.error or "restore failed"})
        body = json.loads(request.content)
        restored = sum(item["quantity"] for item in body["items"])
        return httpx.Response(200, json={"success": True, "data": {"summary": {"totalRestored": restored}}})

class FakeWebhookReceiver:
    def __init__(self):
        self.requests = []
        self.status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text="ok")

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()

@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

@pytest.fixture
def db(session_factory, seed):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture
def seed(session_factory):
    with session_factory() as s:
        s.add_all([
            Client(id=TENANT, name="Acme", company_name="Acme Traders", email="ops@acme.test", slug="acme"),
            Client(id=OTHER_TENANT, name="Globex", company_name="Globex", email="ops@globex.test", slug="globex"),
            ClientCredits(client_id=TENANT, balance=10, total_added=10, total_used=0),
            ClientCredits(client_id=OTHER_TENANT, balance=10, total_added=10, total_used=0),
            PickupLocation(client_id=TENANT, value=PICKUP, delhivery_api_key="dl-key-123",
                           return_address="12 Dock Road", return_pincode="400001"),
            PickupLocation(client_id=OTHER_TENANT, value=PICKUP, delhivery_api_key="dl-key-456"),
        ])
        s.flush()
        north = SubGroup(client_id=TENANT, name="North")
        s.add(north)
        s.flush()
        s.add(UserSubGroup(user_id="child-1", sub_group_id=north.id))
        s.add(UserSubGroup(user_id="child-2", sub_group_id=north.id))
        s.commit()

@pytest.fixture
def catalog_mapping(session_factory):
    with session_factory() as s:
        s.add(CrossAppMapping(client_id=TENANT, catalog_client_id="cat-client-1", catalog_api_key="cat-key-1"))
        s.commit()

@pytest.fixture
def config(session_factory, seed):
    return ConfigurationProvider(session_factory, ttl=300)

@pytest.fixture
def courier_api():
    return FakeCourierAPI()

@pytest.fixture
def catalog_api():
    return FakeCatalogAPI()

@pytest.fixture
def webhook_receiver():
    return FakeWebhookReceiver()

@pytest.fixture
def gateway(config, courier_api):
    return DelhiveryGateway(
        config,
        base_url=COURIER_URL,
        max_retries=1,
        backoff_seconds=0,
        transport=httpx.MockTransport(courier_api.handler),
        sleep=lambda seconds: None,
    )

@pytest.fixture
def credits(session_factory):
    return CreditLedger(session_factory)

@pytest.fixture
def inventory(catalog_api):
    return InventoryRestorer(CATALOG_URL, transport=httpx.MockTransport(catalog_api.handler))

@pytest.fixture
def webhooks(session_factory, webhook_receiver):
    return WebhookDispatcher(session_factory, transport=httpx.MockTransport(webhook_receiver.handler))

@pytest.fixture
def analytics(session_factory):
    return AnalyticsRecorder(session_factory)

@pytest.fixture
def creation(db, config, gateway, credits, webhooks, analytics):
    return OrderCreationService(db, config, gateway, credits, webhooks, analytics)

@pytest.fixture
def deletion(db, config, gateway, inventory):
    return OrderDeletionService(db, config, gateway, inventory)

def make_actor(user_id="admin-1", client_id=TENANT, role="client_admin", email="admin@acme.test"):
    return Actor(user_id=user_id, client_id=client_id, role=role, email=email)

def scope_for(db, actor):
    return AccessScope.resolve(db, actor)

def order_payload(**overrides):
    payload = {
        "name": "Ravi Kumar",
        "mobile": "9876543210",
        "address": "221 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "country": "India",
        "pincode": "560001",
        "courier_service": "delhivery",
        "pickup_location": PICKUP,
        "package_value": 1499.0,
        "weight": 500.0,
        "total_items": 2,
        "is_cod": False,
    }
    payload.update(overrides)
    return payload

def make_order(session_factory, client_id=TENANT, created_by="admin-1", **fields):
    values = dict(
        client_id=client_id,
        reference_number="REF-9876543210-ABC123",
        name="Ravi Kumar",
        mobile="9876543210",
        address="221 MG Road",
        city="Bengaluru",
        state="Karnataka",
        country="India",
        pincode="560001",
        courier_service="DTDC",
        pickup_location=PICKUP,
        package_value=1499.0,
        weight=500.0,
        total_items=2,
        created_by=created_by,
        tracking_status="pending",
    )
    values.update(fields)
    with session_factory() as s:
        order = Order(**values)
        s.add(order)
        s.commit()
        return order.id

def count_orders(session_factory, client_id=None):
    with session_factory() as s:
        stmt = select(func.count()).select_from(Order)
        if client_id is not None:
            stmt = stmt.where(Order.client_id == client_id)
        return s.scalar(stmt)

def auth_headers(user_id="admin-1", client_id=TENANT, role="client_admin", email="admin@acme.test"):
    token = create_access_token(user_id, client_id, role, email=email)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def api(session_factory, config, gateway, credits, inventory, webhooks, analytics):
    from orderhub.api import deps
    from orderhub.infrastructure.db import get_db
    from orderhub.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_config_provider] = lambda: config
    app.dependency_overrides[deps.get_courier] = lambda: gateway
    app.dependency_overrides[deps.get_credit_ledger] = lambda: credits
    app.dependency_overrides[deps.get_inventory_restorer] = lambda: inventory
    app.dependency_overrides[deps.get_webhook_dispatcher] = lambda: webhooks
    app.dependency_overrides[deps.get_analytics_recorder] = lambda: analytics
    yield TestClient(app)
    app.dependency_overrides.clear()
