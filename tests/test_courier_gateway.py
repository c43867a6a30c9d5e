import json
from urllib.parse import parse_qs
import httpx
import pytest
from orderhub.infrastructure.courier import (
    CourierGatewayError,
    DelhiveryGateway,
    matches_gateway,
    sanitize_text,
)
from orderhub.infrastructure.config_provider import PickupLocationSettings
from conftest import COURIER_URL, PICKUP, TENANT, order_payload

def _draft(**overrides):
    draft = order_payload(client_id=TENANT, reference_number="REF-9876543210-ABC123")
    draft.update(overrides)
    return draft

def test_gateway_name_matching():
    assert matches_gateway("delhivery")
    assert matches_gateway(" Delhivery ")
    assert not matches_gateway("DTDC")
    assert not matches_gateway(None)

def test_sanitize_text_strips_separators():
    assert sanitize_text("Flat 4;\nMG Road\t Bengaluru") == "Flat 4 MG Road Bengaluru"
    assert sanitize_text(None) == ""

def test_build_shipment_uses_location_defaults(gateway):
    location = PickupLocationSettings(
        value=PICKUP,
        delhivery_api_key="k",
        product_description="Ceramics",
        seller_name="Acme Traders",
        shipment_length=20,
        fragile_shipment=True,
    )
    shipment = gateway.build_shipment(_draft(reseller_name=None), location)
    assert shipment["products_desc"] == "Ceramics"
    assert shipment["seller_name"] == "Acme Traders"
    assert shipment["shipment_length"] == "20"
    assert shipment["fragile_shipment"] is True
    assert shipment["payment_mode"] == "Prepaid"
    assert shipment["cod_amount"] == ""

def test_create_order_success(gateway, courier_api):
    booking = gateway.create_order(_draft())
    assert booking.success is True
    assert booking.waybill_number == "WB123"
    assert booking.order_id == "DL-ORD-1"

    request = courier_api.requests[0]
    assert str(request.url) == f"{COURIER_URL}/api/cmu/create.json"
    assert request.headers["Authorization"] == "Token dl-key-123"
    form = parse_qs(request.content.decode())
    shipment = json.loads(form["data"][0])["shipments"][0]
    assert shipment["order"] == "REF-9876543210-ABC123"
    assert shipment["pin"] == "560001"

def test_create_order_rejection_uses_rmk(gateway, courier_api):
    courier_api.create_response = {"success": False, "rmk": "Invalid pickup location", "packages": []}
    booking = gateway.create_order(_draft())
    assert booking.success is False
    assert "Invalid pickup location" in booking.error

def test_create_order_without_waybill_is_a_failure(gateway, courier_api):
    courier_api.create_response = {"success": True, "packages": [{"status": "Success"}]}
    booking = gateway.create_order(_draft())
    assert booking.success is False

def test_missing_api_key_raises(gateway, courier_api):
    with pytest.raises(CourierGatewayError):
        gateway.create_order(_draft(pickup_location="Nowhere"))
    assert courier_api.requests == []

def test_retries_then_raises(config, courier_api):
    courier_api.fail_with = httpx.ReadTimeout("timed out")
    delays = []
    gateway = DelhiveryGateway(
        config,
        base_url=COURIER_URL,
        max_retries=2,
        backoff_seconds=0.5,
        transport=httpx.MockTransport(courier_api.handler),
        sleep=delays.append,
    )
    with pytest.raises(CourierGatewayError):
        gateway.create_order(_draft())
    assert len(courier_api.requests) == 3
    assert delays == [0.5, 1.0]

def test_http_error_status_is_retried(gateway, courier_api):
    courier_api.create_status = 503
    with pytest.raises(CourierGatewayError) as exc:
        gateway.create_order(_draft())
    assert "503" in str(exc.value)
    assert len(courier_api.requests) == 2

def test_cancel_order(gateway, courier_api):
    result = gateway.cancel_order("WB123", PICKUP, TENANT)
    assert result.success is True
    assert json.loads(courier_api.requests[0].content) == {"waybill": "WB123", "cancellation": "true"}

def test_cancel_order_failure_never_raises(gateway, courier_api):
    courier_api.cancel_status = 400
    result = gateway.cancel_order("WB123", PICKUP, TENANT)
    assert result.success is False
    assert result.error

def test_cancel_order_unexpected_error_never_raises(gateway, courier_api):
    courier_api.fail_with = RuntimeError("socket closed mid-request")
    result = gateway.cancel_order("WB123", PICKUP, TENANT)
    assert result.success is False
    assert "socket closed" in result.error

def test_non_object_booking_response_raises(gateway, courier_api):
    courier_api.create_response = ["unexpected"]
    with pytest.raises(CourierGatewayError, match="Unexpected Delhivery response"):
        gateway.create_order(_draft())
