from functools import lru_cache
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from orderhub.application.scope import AccessScope, Actor
from orderhub.core_settings import get_settings
from orderhub.infrastructure.analytics import AnalyticsRecorder
from orderhub.infrastructure.auth import decode_access_token
from orderhub.infrastructure.config_provider import ConfigurationProvider
from orderhub.infrastructure.courier import DelhiveryGateway
from orderhub.infrastructure.credits import CreditLedger
from orderhub.infrastructure.db import get_db, get_session_factory
from orderhub.infrastructure.inventory import InventoryRestorer
from orderhub.infrastructure.webhooks import WebhookDispatcher
from shared.core import set_request_context

BEARER_PREFIX = "Bearer "

def get_actor(request: Request) -> Actor:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Missing token")
    token = auth_header.split(" ", 1)[1]
    token_data = decode_access_token(token)
    if not token_data or not token_data.get("sub") or not token_data.get("client_id"):
        raise HTTPException(status_code=401, detail="Invalid token")
    actor = Actor(
        user_id=str(token_data["sub"]),
        client_id=str(token_data["client_id"]),
        role=token_data.get("role") or "user",
        email=token_data.get("email"),
    )
    set_request_context(user_id=actor.user_id, client_id=actor.client_id)
    return actor

def get_scope(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> AccessScope:
    return AccessScope.resolve(db, actor)

@lru_cache
def get_config_provider() -> ConfigurationProvider:
    settings = get_settings()
    return ConfigurationProvider(
        get_session_factory(),
        ttl=settings.CONFIG_CACHE_TTL_SECONDS,
        maxsize=settings.CONFIG_CACHE_MAXSIZE,
        default_prefix=settings.DEFAULT_REFERENCE_PREFIX,
    )

def get_courier(config: ConfigurationProvider = Depends(get_config_provider)) -> DelhiveryGateway:
    settings = get_settings()
    return DelhiveryGateway(
        config,
        base_url=settings.DELHIVERY_BASE_URL,
        timeout=settings.COURIER_TIMEOUT_SECONDS,
        max_retries=settings.COURIER_MAX_RETRIES,
        backoff_seconds=settings.COURIER_RETRY_BACKOFF_SECONDS,
    )

def get_credit_ledger() -> CreditLedger:
    return CreditLedger(get_session_factory())

def get_inventory_restorer() -> InventoryRestorer:
    settings = get_settings()
    return InventoryRestorer(
        settings.CATALOG_APP_URL,
        namespace=settings.ORDER_NAMESPACE,
        timeout=settings.CATALOG_TIMEOUT_SECONDS,
    )

def get_webhook_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher(get_session_factory(), user_agent=get_settings().WEBHOOK_USER_AGENT)

def get_analytics_recorder() -> AnalyticsRecorder:
    return AnalyticsRecorder(get_session_factory())
