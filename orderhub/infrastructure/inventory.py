"""Catalog inventory restoration for deleted orders."""

from typing import Any, Dict, List, Optional
import json
import re
import httpx
from orderhub.infrastructure.config_provider import CatalogCredentials, ClientProfile
from shared.core import get_logger

logger = get_logger(__name__)

class InventoryRestoreError(Exception):
    """The catalog refused or failed to restore stock."""

def client_slug(client: ClientProfile) -> Optional[str]:
    if client.slug:
        return client.slug
    base = client.company_name or client.name or "default-client"
    slug = re.sub(r"\s+", "-", base.lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or None

def parse_products(raw: Optional[str]) -> List[Dict[str, Any]]:
    """Decode the serialised product list stored on an order.

    Raises ValueError when the value is not a JSON list.
    """
    if not raw:
        return []
    products = json.loads(raw)
    if not isinstance(products, list):
        raise ValueError("products is not a list")
    return products

def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1

def build_restore_items(products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items = []
    for item in products:
        if not isinstance(item, dict):
            continue
        product = item.get("product") if isinstance(item.get("product"), dict) else {}
        sku = product.get("sku") or item.get("sku")
        if not sku:
            continue
        items.append({"sku": sku, "quantity": _quantity(item.get("quantity"))})
    return items

class InventoryRestorer:
    def __init__(
        self,
        base_url: str,
        namespace: str = "scan2ship",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace
        self.timeout = timeout
        self.transport = transport

    def idempotency_key(self, order_id: int) -> str:
        return f"{self.namespace}_order_{order_id}"

    def restore(
        self,
        order_id: int,
        client: ClientProfile,
        items: List[Dict[str, Any]],
        credentials: CatalogCredentials,
    ) -> int:
        """Return stock for one order; returns the number of restored units."""
        slug = client_slug(client)
        if not slug:
            raise InventoryRestoreError("No client slug available for inventory restoration")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as http:
                response = http.post(
                    f"{self.base_url}/api/public/inventory/restore",
                    params={"client": slug},
                    headers={
                        "X-API-Key": credentials.api_key,
                        "X-Client-ID": credentials.catalog_client_id,
                    },
                    json={
                        "orderId": self.idempotency_key(order_id),
                        "items": items,
                        "reason": "order_deletion",
                        "webhookId": None,
                    },
                )
        except httpx.HTTPError as e:
            raise InventoryRestoreError(f"Catalog request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.is_success:
            error = body.get("error") if isinstance(body, dict) else None
            raise InventoryRestoreError(error or f"Catalog returned HTTP {response.status_code}")

        data = body.get("data") if isinstance(body, dict) else None
        summary = data.get("summary") if isinstance(data, dict) else None
        restored = summary.get("totalRestored") if isinstance(summary, dict) else None
        if not isinstance(restored, int):
            restored = sum(item["quantity"] for item in items)
        logger.info(
            "Inventory restored",
            extra={'extra_fields': {'order_id': order_id, 'client_slug': slug, 'restored': restored}},
        )
        return restored
