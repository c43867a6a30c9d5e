"""Per-request visibility rules.

Every actor is confined to its own tenant. ``child_user`` actors are further
restricted to orders of their sub-group, plus orders they created themselves.
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy import Select, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from orderhub.domain.models import Order, SubGroup, UserSubGroup
from shared.core import get_logger

logger = get_logger(__name__)

CHILD_USER = "child_user"

@dataclass(frozen=True)
class Actor:
    user_id: str
    client_id: str
    role: str
    email: Optional[str] = None

    @property
    def is_restricted(self) -> bool:
        return self.role == CHILD_USER

def lookup_sub_group(db: Session, user_id: str) -> Optional[str]:
    """Name of the user's sub-group, or None when unassigned or unreadable."""
    try:
        return db.scalar(
            select(SubGroup.name)
            .join(UserSubGroup, UserSubGroup.sub_group_id == SubGroup.id)
            .where(UserSubGroup.user_id == user_id)
            .limit(1)
        )
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            "Sub-group lookup failed, falling back to own orders",
            exc_info=True,
            extra={'extra_fields': {'user_id': user_id}},
        )
        return None

@dataclass(frozen=True)
class AccessScope:
    client_id: str
    user_id: str
    restricted: bool = False
    sub_group: Optional[str] = None

    @classmethod
    def resolve(cls, db: Session, actor: Actor) -> "AccessScope":
        sub_group = lookup_sub_group(db, actor.user_id) if actor.is_restricted else None
        return cls(
            client_id=actor.client_id,
            user_id=actor.user_id,
            restricted=actor.is_restricted,
            sub_group=sub_group,
        )

    def apply(self, stmt: Select) -> Select:
        stmt = stmt.where(Order.client_id == self.client_id)
        if not self.restricted:
            return stmt
        if self.sub_group:
            return stmt.where(or_(Order.sub_group == self.sub_group, Order.created_by == self.user_id))
        return stmt.where(Order.created_by == self.user_id)

    def permits(self, order: Order) -> bool:
        if order.client_id != self.client_id:
            return False
        if not self.restricted:
            return True
        if order.created_by == self.user_id:
            return True
        return bool(self.sub_group) and order.sub_group == self.sub_group
