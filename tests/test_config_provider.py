from sqlalchemy import select
from orderhub.domain.models import ClientOrderConfig, CrossAppMapping, PickupLocation
from orderhub.infrastructure.config_provider import ConfigurationProvider
from conftest import PICKUP, TENANT

class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

def test_default_reference_policy(config):
    policy = config.reference_policy(TENANT)
    assert policy.enabled is True
    assert policy.prefix == "REF"

def test_configured_policy_with_blank_prefix_uses_default(session_factory, seed):
    with session_factory() as s:
        s.add(ClientOrderConfig(client_id=TENANT, enable_reference_prefix=True, reference_prefix="  "))
        s.commit()
    provider = ConfigurationProvider(session_factory, default_prefix="ORD")
    assert provider.reference_policy(TENANT).prefix == "ORD"

def test_values_refresh_after_ttl(session_factory, seed):
    clock = Clock()
    provider = ConfigurationProvider(session_factory, ttl=60, timer=clock)
    assert provider.reference_policy(TENANT).prefix == "REF"

    with session_factory() as s:
        s.add(ClientOrderConfig(client_id=TENANT, enable_reference_prefix=True, reference_prefix="ACME"))
        s.commit()

    clock.now = 30
    assert provider.reference_policy(TENANT).prefix == "REF"
    clock.now = 61
    assert provider.reference_policy(TENANT).prefix == "ACME"

def test_invalidate_drops_tenant_entries(session_factory, seed):
    provider = ConfigurationProvider(session_factory, ttl=3600)
    assert provider.pickup_location(TENANT, PICKUP).delhivery_api_key == "dl-key-123"

    with session_factory() as s:
        location = s.scalar(select(PickupLocation).where(PickupLocation.client_id == TENANT))
        location.delhivery_api_key = "rotated-key"
        s.commit()

    assert provider.pickup_location(TENANT, PICKUP).delhivery_api_key == "dl-key-123"
    provider.invalidate(TENANT)
    assert provider.pickup_location(TENANT, PICKUP).delhivery_api_key == "rotated-key"

def test_unknown_pickup_location(config):
    assert config.pickup_location(TENANT, "Nowhere") is None

def test_catalog_credentials_ignore_inactive_mappings(session_factory, config):
    with session_factory() as s:
        s.add(CrossAppMapping(client_id=TENANT, catalog_client_id="old", catalog_api_key="old-key", is_active=False))
        s.commit()
    assert config.catalog_credentials(TENANT) is None

    config.invalidate()
    with session_factory() as s:
        s.add(CrossAppMapping(client_id=TENANT, catalog_client_id="cat", catalog_api_key="cat-key"))
        s.commit()
    credentials = config.catalog_credentials(TENANT)
    assert credentials.api_key == "cat-key"
    assert credentials.catalog_client_id == "cat"

def test_client_profile_falls_back_to_id(config):
    assert config.client_profile(TENANT).slug == "acme"
    unknown = config.client_profile("ghost")
    assert unknown.id == "ghost"
    assert unknown.name is None
