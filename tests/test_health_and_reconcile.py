from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select
from orderhub import reconcile
from orderhub.domain.models import OwedCreditDebit
from shared.core import HealthStatus, ServiceHealth, check_result
from conftest import TENANT

def _health_client(engine, **kwargs):
    app = FastAPI()
    app.include_router(ServiceHealth("orderhub", "test", engine_factory=lambda: engine, **kwargs).create_health_router())
    return TestClient(app)

def test_startup_check_sees_schema(engine):
    resp = _health_client(engine).get("/health/startup")
    assert resp.status_code == 200
    assert resp.json()["status"] == "started"

def test_startup_check_waits_for_missing_tables(engine):
    resp = _health_client(engine, required_tables=("orders", "not_migrated_yet")).get("/health/startup")
    assert resp.status_code == 503
    assert "not_migrated_yet" in resp.json()["checks"]["database:schema"]["output"]

def test_readiness_reports_database(engine):
    body = _health_client(engine).get("/health/ready").json()
    assert body["checks"]["database:connectivity"]["status"] == "pass"

def test_readiness_runs_service_checks(engine):
    def broken():
        raise RuntimeError("ledger offline")

    checks = {
        "credits:owed_debits": lambda: check_result(HealthStatus.WARN, "ledger", 2, "entries"),
        "catalog:reachable": broken,
    }
    resp = _health_client(engine, extra_checks=checks).get("/health/ready")
    body = resp.json()
    assert resp.status_code == 503
    assert body["checks"]["credits:owed_debits"]["observedValue"] == "2.00"
    assert body["checks"]["catalog:reachable"]["output"] == "ledger offline"

def test_metrics(engine):
    client = _health_client(engine)
    client.get("/health/ready")
    body = client.get("/metrics").json()
    assert body["service"] == "orderhub"
    assert body["readiness_checks_run"] == 1
    assert "uptime_seconds" in body

def test_pending_owed_debits(credits, seed):
    assert credits.pending_owed_debits() == 0
    credits.record_owed_debit(TENANT, "admin-1", 11, "ledger unavailable")
    assert credits.pending_owed_debits(TENANT) == 1
    assert credits.pending_owed_debits("client-2") == 0

def test_reconcile_settles_owed_debits(credits, session_factory, seed, monkeypatch):
    credits.record_owed_debit(TENANT, "admin-1", 11, "ledger unavailable")
    monkeypatch.setattr(reconcile, "get_session_factory", lambda: session_factory)

    assert reconcile.main(["--client-id", TENANT]) == 0
    assert credits.balance(TENANT) == 9
    with session_factory() as s:
        assert s.scalar(select(OwedCreditDebit.status)) == "settled"
    assert credits.pending_owed_debits() == 0

def test_reconcile_exit_code_when_debits_remain(credits, session_factory, seed, monkeypatch):
    credits.record_owed_debit("client-3", None, 12, "ledger unavailable")
    monkeypatch.setattr(reconcile, "get_session_factory", lambda: session_factory)

    assert reconcile.main([]) == 1
