from sqlalchemy import select
from orderhub.application.scope import AccessScope, lookup_sub_group
from orderhub.domain.models import Order
from conftest import OTHER_TENANT, TENANT, make_actor, make_order

def _visible(db, scope):
    return set(db.scalars(scope.apply(select(Order.id))).all())

def test_admin_sees_whole_tenant(db, session_factory):
    own = make_order(session_factory, created_by="admin-1")
    other = make_order(session_factory, created_by="someone")
    make_order(session_factory, client_id=OTHER_TENANT, created_by="admin-1")

    scope = AccessScope.resolve(db, make_actor())
    assert scope.restricted is False
    assert _visible(db, scope) == {own, other}

def test_child_user_sees_sub_group_and_own_orders(db, session_factory):
    sibling = make_order(session_factory, created_by="child-2", sub_group="North")
    own = make_order(session_factory, created_by="child-1")
    make_order(session_factory, created_by="admin-1")
    make_order(session_factory, created_by="x", sub_group="South")

    scope = AccessScope.resolve(db, make_actor(user_id="child-1", role="child_user"))
    assert scope.sub_group == "North"
    assert _visible(db, scope) == {sibling, own}

def test_child_user_without_sub_group_sees_own_orders(db, session_factory):
    own = make_order(session_factory, created_by="child-9")
    make_order(session_factory, created_by="child-2", sub_group="North")

    scope = AccessScope.resolve(db, make_actor(user_id="child-9", role="child_user"))
    assert scope.sub_group is None
    assert _visible(db, scope) == {own}

def test_permits_matches_query_filter(db, session_factory):
    scope = AccessScope(client_id=TENANT, user_id="child-1", restricted=True, sub_group="North")
    with session_factory() as s:
        orders = [
            s.get(Order, make_order(session_factory, created_by="child-2", sub_group="North")),
            s.get(Order, make_order(session_factory, created_by="child-1")),
            s.get(Order, make_order(session_factory, created_by="admin-1")),
            s.get(Order, make_order(session_factory, client_id=OTHER_TENANT, created_by="child-1")),
        ]
    assert [scope.permits(o) for o in orders] == [True, True, False, False]

def test_lookup_sub_group(db):
    assert lookup_sub_group(db, "child-1") == "North"
    assert lookup_sub_group(db, "nobody") is None
