import pytest
from sqlalchemy import select
from orderhub.domain.models import ClientCreditCost, CreditTransaction, OwedCreditDebit
from orderhub.infrastructure.credits import InsufficientBalanceError
from conftest import TENANT

def test_default_order_cost(credits, seed):
    assert credits.order_credit_cost(TENANT) == 1

def test_tenant_cost_override(credits, session_factory, seed):
    with session_factory() as s:
        s.add(ClientCreditCost(client_id=TENANT, feature="ORDER", cost=3))
        s.commit()
    assert credits.order_credit_cost(TENANT) == 3
    assert credits.has_sufficient_credits(TENANT, 3)
    assert not credits.has_sufficient_credits(TENANT, 11)

def test_deduct_records_transaction(credits, session_factory, seed):
    assert credits.deduct_order_credits(TENANT, "admin-1", 42) == 9
    with session_factory() as s:
        tx = s.scalar(select(CreditTransaction).where(CreditTransaction.order_id == 42))
    assert tx.type == "DEDUCT"
    assert tx.balance == 9
    assert tx.feature == "ORDER"

def test_balance_never_goes_negative(credits, seed):
    credits.add_credits("client-3", 1, "Initial credits")
    credits.deduct_order_credits("client-3", "u", 1)
    with pytest.raises(InsufficientBalanceError):
        credits.deduct_order_credits("client-3", "u", 2)
    assert credits.balance("client-3") == 0

def test_unknown_tenant_has_zero_balance(credits, seed):
    assert credits.balance("nobody") == 0
    assert not credits.has_sufficient_credits("nobody", 1)

def test_owed_debit_stays_pending_without_balance(credits, session_factory, seed):
    credits.record_owed_debit("client-3", "u", 7, "ledger unavailable")
    assert credits.settle_owed_debits() == {"settled": 0, "pending": 1}
    with session_factory() as s:
        owed = s.scalar(select(OwedCreditDebit))
    assert owed.status == "pending"
    assert owed.attempts == 1

    credits.add_credits("client-3", 5, "Top up")
    assert credits.settle_owed_debits(client_id="client-3") == {"settled": 1, "pending": 0}
    assert credits.balance("client-3") == 4
    with session_factory() as s:
        owed = s.scalar(select(OwedCreditDebit))
    assert owed.status == "settled"
    assert owed.settled_at is not None
