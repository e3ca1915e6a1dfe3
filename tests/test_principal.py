import pytest

from campusmarket.core.errors import AuthorizationError
from campusmarket.core.principal import AdminPrincipal, Principal, Role, SystemPrincipal, ensure_admin, ensure_system


def test_as_admin_requires_admin_role():
    seller = Principal(user_id="u1", role=Role.SELLER)
    with pytest.raises(AuthorizationError):
        seller.as_admin()


def test_admin_principal_cannot_be_forged():
    with pytest.raises(AuthorizationError):
        AdminPrincipal(user_id="u1", role=Role.SELLER)


def test_ensure_admin_passes_through_capability():
    admin = Principal(user_id="a1", role=Role.ADMIN).as_admin()
    assert isinstance(admin, AdminPrincipal)
    assert ensure_admin(admin) is admin
    assert ensure_admin(Principal(user_id="a1", role=Role.ADMIN)).user_id == "a1"


def test_system_capability_for_checkout_and_admin_only():
    checkout = Principal(user_id="svc", role=Role.SYSTEM).as_system()
    assert isinstance(checkout, SystemPrincipal)
    assert ensure_system(checkout) is checkout
    assert ensure_system(Principal(user_id="a1", role=Role.ADMIN)).user_id == "a1"

    with pytest.raises(AuthorizationError):
        Principal(user_id="u1", role=Role.SELLER).as_system()
    with pytest.raises(AuthorizationError):
        SystemPrincipal(user_id="u1", role=Role.SELLER)
    with pytest.raises(AuthorizationError):
        Principal(user_id="svc", role=Role.SYSTEM).as_admin()
