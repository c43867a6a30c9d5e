"""Prepaid credit ledger.

The balance is only ever changed by a single conditional UPDATE, so two
concurrent debits cannot take it below zero. Debits that fail at order time
are parked in ``owed_credit_debits`` and settled later.
"""

from typing import Callable, Optional
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from orderhub.domain.models import (
    ClientCreditCost,
    ClientCredits,
    CreditTransaction,
    OwedCreditDebit,
    utcnow,
)
from shared.core import get_logger

logger = get_logger(__name__)

CREDIT_COSTS = {
    "ORDER": 1,
    "WHATSAPP": 1,
    "IMAGE_PROCESSING": 2,
    "TEXT_PROCESSING": 1,
}

class CreditLedgerError(Exception):
    """The ledger could not complete the operation."""

class InsufficientBalanceError(CreditLedgerError):
    pass

class CreditLedger:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def credit_cost(self, client_id: str, feature: str) -> int:
        with self.session_factory() as db:
            cost = db.scalar(
                select(ClientCreditCost.cost).where(
                    ClientCreditCost.client_id == client_id,
                    ClientCreditCost.feature == feature,
                )
            )
        return CREDIT_COSTS[feature] if cost is None else cost

    def order_credit_cost(self, client_id: str) -> int:
        return self.credit_cost(client_id, "ORDER")

    def balance(self, client_id: str) -> int:
        with self.session_factory() as db:
            value = db.scalar(select(ClientCredits.balance).where(ClientCredits.client_id == client_id))
        return value or 0

    def has_sufficient_credits(self, client_id: str, amount: int) -> bool:
        try:
            return self.balance(client_id) >= amount
        except SQLAlchemyError as e:
            raise CreditLedgerError(f"Failed to read credits for client {client_id}") from e

    def add_credits(self, client_id: str, amount: int, description: str, user_id: Optional[str] = None) -> int:
        with self.session_factory() as db:
            credits = db.scalar(select(ClientCredits).where(ClientCredits.client_id == client_id))
            if credits is None:
                credits = ClientCredits(client_id=client_id, balance=0, total_added=0, total_used=0)
                db.add(credits)
            credits.balance += amount
            credits.total_added += amount
            db.add(CreditTransaction(
                client_id=client_id,
                user_id=user_id,
                type="ADD",
                amount=amount,
                balance=credits.balance,
                description=description,
                feature="MANUAL",
            ))
            db.commit()
            return credits.balance

    def _deduct(self, db: Session, client_id: str, amount: int, description: str, feature: str,
                user_id: Optional[str], order_id: Optional[int]) -> int:
        result = db.execute(
            update(ClientCredits)
            .where(ClientCredits.client_id == client_id, ClientCredits.balance >= amount)
            .values(
                balance=ClientCredits.balance - amount,
                total_used=ClientCredits.total_used + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise InsufficientBalanceError(f"Insufficient credits for client {client_id}")
        new_balance = db.scalar(select(ClientCredits.balance).where(ClientCredits.client_id == client_id))
        db.add(CreditTransaction(
            client_id=client_id,
            user_id=user_id,
            type="DEDUCT",
            amount=amount,
            balance=new_balance,
            description=description,
            feature=feature,
            order_id=order_id,
        ))
        return new_balance

    def deduct_order_credits(self, client_id: str, user_id: Optional[str], order_id: int) -> int:
        """Debit the tenant's order cost; returns the new balance."""
        amount = self.order_credit_cost(client_id)
        try:
            with self.session_factory() as db:
                balance = self._deduct(db, client_id, amount, f"Order creation - Order #{order_id}",
                                       "ORDER", user_id, order_id)
                db.commit()
        except SQLAlchemyError as e:
            raise CreditLedgerError(f"Failed to deduct credits for order {order_id}") from e
        logger.info(
            "Credits deducted",
            extra={'extra_fields': {'client_id': client_id, 'order_id': order_id, 'amount': amount, 'balance': balance}},
        )
        return balance

    def record_owed_debit(self, client_id: str, user_id: Optional[str], order_id: int, error: str) -> None:
        """Park a failed order debit for later settlement."""
        with self.session_factory() as db:
            db.add(OwedCreditDebit(
                client_id=client_id,
                user_id=user_id,
                order_id=order_id,
                amount=self.order_credit_cost(client_id),
                status="pending",
                attempts=0,
                last_error=error,
            ))
            db.commit()

    def settle_owed_debits(self, client_id: Optional[str] = None) -> dict:
        """Retry pending debits. Returns counts of settled and still-pending entries."""
        settled = pending = 0
        with self.session_factory() as db:
            stmt = select(OwedCreditDebit).where(OwedCreditDebit.status == "pending").order_by(OwedCreditDebit.id)
            if client_id is not None:
                stmt = stmt.where(OwedCreditDebit.client_id == client_id)
            entries = db.scalars(stmt).all()

        for entry in entries:
            with self.session_factory() as db:
                try:
                    self._deduct(db, entry.client_id, entry.amount,
                                 f"Settlement of owed debit - Order #{entry.order_id}",
                                 "ORDER", entry.user_id, entry.order_id)
                except (CreditLedgerError, SQLAlchemyError) as e:
                    db.rollback()
                    db.execute(
                        update(OwedCreditDebit)
                        .where(OwedCreditDebit.id == entry.id)
                        .values(attempts=OwedCreditDebit.attempts + 1, last_error=str(e))
                    )
                    db.commit()
                    pending += 1
                    logger.warning(
                        "Owed debit still unsettled",
                        extra={'extra_fields': {'client_id': entry.client_id, 'order_id': entry.order_id, 'error': str(e)}},
                    )
                    continue
                # settle in the same transaction as the debit itself
                db.execute(
                    update(OwedCreditDebit)
                    .where(OwedCreditDebit.id == entry.id)
                    .values(status="settled", attempts=OwedCreditDebit.attempts + 1, settled_at=utcnow())
                )
                db.commit()
                settled += 1
        return {"settled": settled, "pending": pending}

    def pending_owed_debits(self, client_id: Optional[str] = None) -> int:
        stmt = select(func.count(OwedCreditDebit.id)).where(OwedCreditDebit.status == "pending")
        if client_id is not None:
            stmt = stmt.where(OwedCreditDebit.client_id == client_id)
        with self.session_factory() as db:
            return db.scalar(stmt) or 0
