"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied back-office operations (403)
- Cashier can ring up sales; admin can do everything
- Login, logout, and session validation
"""

import pytest

from storepos.errors import AuthorizationError
from storepos.permissions import ActorContext, authorize, permissions_for_role

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/categories"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("POST", "/api/inventory/receive"),
            ("POST", "/api/inventory/adjust"),
            ("GET", "/api/inventory/1"),
            ("GET", "/api/stock-movements"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("POST", "/api/sales/1/void"),
            ("GET", "/api/reports/summary"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/products", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json == {"status": "ok", "database": "ok"}


# =============================================================================
# CASHIER DENIED BACK-OFFICE OPERATIONS (403)
# =============================================================================


class TestCashierDenied:
    """Cashier role cannot perform privileged operations."""

    def test_cannot_void_sale(self, client, cashier_headers, cashier_actor, product):
        from storepos.services import sales_service

        sale = sales_service.post_sale(
            items=[{"product_id": product.id, "qty": 1}], cash_received="50", actor=cashier_actor,
        )
        resp = client.post(f"/api/sales/{sale.id}/void", json={}, headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.json["details"]["required_permission"] == "VOID_SALE"

    def test_cannot_receive_inventory(self, client, cashier_headers, product):
        resp = client.post(
            "/api/inventory/receive",
            json={"product_id": product.id, "qty": 5},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_adjust_inventory(self, client, cashier_headers, product):
        resp = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "qty": -1},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post(
            "/api/products",
            json={"sku": "X-1", "name": "X", "price": "1.00"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_view_reports(self, client, cashier_headers):
        assert client.get("/api/reports/summary", headers=cashier_headers).status_code == 403

    def test_cannot_view_movements(self, client, cashier_headers):
        assert client.get("/api/stock-movements", headers=cashier_headers).status_code == 403


class TestCashierAllowed:

    def test_can_browse_and_sell(self, client, cashier_headers, product):
        assert client.get("/api/products", headers=cashier_headers).status_code == 200

        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "qty": 1}], "cash_received": "50"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201

        assert client.get("/api/sales", headers=cashier_headers).status_code == 200


class TestPermissionTable:

    def test_cashier_permissions(self):
        assert permissions_for_role("cashier") == {"VIEW_CATALOG", "CREATE_SALE", "VIEW_SALES"}

    def test_unknown_role_has_nothing(self):
        assert permissions_for_role("auditor") == frozenset()

    def test_authorize_raises(self):
        actor = ActorContext(user_id=1, username="c", role="cashier", permissions=permissions_for_role("cashier"))
        assert authorize(actor, "CREATE_SALE") is actor
        with pytest.raises(AuthorizationError):
            authorize(actor, "VOID_SALE")

    def test_unknown_permission_code_is_a_bug(self):
        actor = ActorContext(user_id=1, username="a", role="admin", permissions=permissions_for_role("admin"))
        with pytest.raises(ValueError):
            authorize(actor, "LAUNCH_ROCKETS")


# =============================================================================
# LOGIN / LOGOUT / SESSIONS
# =============================================================================


class TestLogin:

    def test_login_returns_token(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert len(resp.json["token"]) == 64
        assert resp.json["expires_at"].endswith("Z")
        assert resp.json["user"]["role"] == "admin"

    def test_wrong_password(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_unknown_user(self, client):
        resp = client.post("/api/auth/login", json={"username": "ghost", "password": TEST_PASSWORD})
        assert resp.status_code == 401

    def test_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"username": "admin"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, db_session, admin_user):
        admin_user.is_active = False
        db_session.commit()
        assert get_auth_token(client, "admin") is None

    def test_me(self, client, cashier_headers):
        resp = client.get("/api/auth/me", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "cashier"
        assert resp.json["permissions"] == ["CREATE_SALE", "VIEW_CATALOG", "VIEW_SALES"]

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401

    def test_deactivated_user_token_rejected(self, client, db_session, admin_user, admin_headers):
        admin_user.is_active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401


class TestPasswords:

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        from storepos.services.auth_service import PasswordValidationError, hash_password

        with pytest.raises(PasswordValidationError):
            hash_password(password, rounds=4)

    def test_duplicate_username(self, admin_user):
        from storepos.errors import ConflictError
        from storepos.services.auth_service import create_user

        with pytest.raises(ConflictError):
            create_user(username="admin", password=TEST_PASSWORD, role="cashier", rounds=4)
