"""Tenant configuration with an explicit TTL refresh policy.

Reference-prefix policy, pickup-location courier settings, catalog
credentials and client profiles are read from the database and cached per
tenant for ``ttl`` seconds. The provider is injected into the workflows;
nothing here is module-level state.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional
import time
from cachetools import TTLCache
from sqlalchemy import select
from sqlalchemy.orm import Session
from orderhub.domain.models import Client, ClientOrderConfig, CrossAppMapping, PickupLocation
from shared.core import get_logger

logger = get_logger(__name__)

@dataclass(frozen=True)
class ReferencePolicy:
    enabled: bool
    prefix: str

@dataclass(frozen=True)
class PickupLocationSettings:
    value: str
    delhivery_api_key: Optional[str]
    product_description: Optional[str] = None
    hsn_code: Optional[str] = None
    return_address: Optional[str] = None
    return_pincode: Optional[str] = None
    seller_name: Optional[str] = None
    seller_address: Optional[str] = None
    seller_gst: Optional[str] = None
    invoice_number: Optional[str] = None
    shipment_length: int = 10
    shipment_breadth: int = 10
    shipment_height: int = 10
    fragile_shipment: bool = False

@dataclass(frozen=True)
class CatalogCredentials:
    api_key: str
    catalog_client_id: str

@dataclass(frozen=True)
class ClientProfile:
    id: str
    name: Optional[str]
    company_name: Optional[str]
    email: Optional[str]
    slug: Optional[str]

_MISSING = object()

class ConfigurationProvider:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl: float = 300,
        maxsize: int = 1024,
        default_prefix: str = "REF",
        timer: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.default_prefix = default_prefix
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = Lock()

    def _cached(self, key: tuple, loader: Callable[[Session], object]):
        with self._lock:
            value = self._cache.get(key, _MISSING)
        if value is not _MISSING:
            return value
        db = self.session_factory()
        try:
            value = loader(db)
        finally:
            db.close()
        with self._lock:
            self._cache[key] = value
        return value

    def invalidate(self, client_id: Optional[str] = None) -> None:
        with self._lock:
            if client_id is None:
                self._cache.clear()
                return
            for key in [k for k in self._cache.keys() if k[1] == client_id]:
                self._cache.pop(key, None)

    def reference_policy(self, client_id: str) -> ReferencePolicy:
        def load(db: Session) -> ReferencePolicy:
            config = db.scalar(select(ClientOrderConfig).where(ClientOrderConfig.client_id == client_id))
            if config is None:
                return ReferencePolicy(enabled=True, prefix=self.default_prefix)
            return ReferencePolicy(
                enabled=bool(config.enable_reference_prefix),
                prefix=(config.reference_prefix or "").strip() or self.default_prefix,
            )
        return self._cached(("reference_policy", client_id), load)

    def pickup_location(self, client_id: str, value: str) -> Optional[PickupLocationSettings]:
        def load(db: Session) -> Optional[PickupLocationSettings]:
            row = db.scalar(
                select(PickupLocation).where(
                    PickupLocation.client_id == client_id,
                    PickupLocation.value == value,
                )
            )
            if row is None:
                logger.warning(
                    "Pickup location not configured",
                    extra={'extra_fields': {'client_id': client_id, 'pickup_location': value}},
                )
                return None
            return PickupLocationSettings(
                value=row.value,
                delhivery_api_key=(row.delhivery_api_key or "").strip() or None,
                product_description=row.product_description,
                hsn_code=row.hsn_code,
                return_address=row.return_address,
                return_pincode=row.return_pincode,
                seller_name=row.seller_name,
                seller_address=row.seller_address,
                seller_gst=row.seller_gst,
                invoice_number=row.invoice_number,
                shipment_length=row.shipment_length or 10,
                shipment_breadth=row.shipment_breadth or 10,
                shipment_height=row.shipment_height or 10,
                fragile_shipment=bool(row.fragile_shipment),
            )
        return self._cached(("pickup_location", client_id, value), load)

    def catalog_credentials(self, client_id: str) -> Optional[CatalogCredentials]:
        def load(db: Session) -> Optional[CatalogCredentials]:
            mapping = db.scalar(
                select(CrossAppMapping)
                .where(CrossAppMapping.client_id == client_id, CrossAppMapping.is_active.is_(True))
                .order_by(CrossAppMapping.created_at.desc())
            )
            if mapping is None:
                return None
            return CatalogCredentials(api_key=mapping.catalog_api_key, catalog_client_id=mapping.catalog_client_id)
        return self._cached(("catalog_credentials", client_id), load)

    def client_profile(self, client_id: str) -> ClientProfile:
        def load(db: Session) -> ClientProfile:
            client = db.get(Client, client_id)
            if client is None:
                return ClientProfile(id=client_id, name=None, company_name=None, email=None, slug=None)
            return ClientProfile(
                id=client.id,
                name=client.name,
                company_name=client.company_name,
                email=client.email,
                slug=client.slug,
            )
        return self._cached(("client_profile", client_id), load)
