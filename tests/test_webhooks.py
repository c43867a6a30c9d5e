import hashlib
import hmac
import json
import httpx
from sqlalchemy import select
from orderhub.domain.models import Webhook, WebhookLog
from orderhub.infrastructure.webhooks import ORDER_CREATED, WebhookDispatcher, sign_payload
from conftest import TENANT

def _hook(session_factory, **fields):
    values = dict(client_id=TENANT, name="erp", url="https://erp.test/hooks", events=[ORDER_CREATED])
    values.update(fields)
    with session_factory() as s:
        hook = Webhook(**values)
        s.add(hook)
        s.commit()
        return hook.id

def _logs(session_factory):
    with session_factory() as s:
        return s.scalars(select(WebhookLog).order_by(WebhookLog.id)).all()

def test_signed_delivery(webhooks, webhook_receiver, session_factory, seed):
    _hook(session_factory, secret="s3cret", headers={"X-Tenant": "acme"})

    delivered = webhooks.trigger(ORDER_CREATED, {"order": {"id": 1}}, TENANT, order_id=1)

    assert delivered == 1
    request = webhook_receiver.requests[0]
    expected = hmac.new(b"s3cret", request.content, hashlib.sha256).hexdigest()
    assert request.headers["X-Webhook-Signature"] == f"sha256={expected}"
    assert request.headers["User-Agent"] == "Scan2Ship-Webhook/1.0"
    assert request.headers["X-Tenant"] == "acme"
    assert json.loads(request.content)["orderId"] == 1
    logs = _logs(session_factory)
    assert [(log.status, log.response_code) for log in logs] == [("success", 200)]

def test_only_subscribed_active_hooks_receive(webhooks, webhook_receiver, session_factory, seed):
    _hook(session_factory, events=["order.updated"])
    _hook(session_factory, is_active=False)
    _hook(session_factory, client_id="client-2")
    _hook(session_factory, events=["*"], url="https://all.test/hooks")

    assert webhooks.trigger(ORDER_CREATED, {}, TENANT) == 1
    assert [str(r.url) for r in webhook_receiver.requests] == ["https://all.test/hooks"]

def test_rejected_delivery_is_logged(webhooks, webhook_receiver, session_factory, seed):
    _hook(session_factory)
    webhook_receiver.status = 500

    assert webhooks.trigger(ORDER_CREATED, {}, TENANT) == 0
    assert _logs(session_factory)[0].status == "failed"

def test_unreachable_endpoint_never_raises(session_factory, seed):
    _hook(session_factory)

    def refuse(request):
        raise httpx.ConnectError("connection refused")

    dispatcher = WebhookDispatcher(session_factory, transport=httpx.MockTransport(refuse))
    assert dispatcher.trigger(ORDER_CREATED, {}, TENANT, order_id=9) == 0
    log = _logs(session_factory)[0]
    assert log.status == "failed"
    assert "connection refused" in log.error_message

def test_sign_payload_is_hex_sha256():
    assert len(sign_payload("k", b"{}")) == 64
