"""
Name: Procedure HTTP Transport Tests

Responsibilities:
  - Login issues a JWT usable as Bearer token
  - Queries via GET, mutations via POST (405 on mismatch)
  - Errors travel as RFC 7807 problem+json (401/403/404/412/422)
  - Health and metrics endpoints
"""

import json

import pytest
from fastapi.testclient import TestClient

from erp.api.main import create_app
from erp.container import get_registry, get_store
from erp.domain.permissions import Permission

pytestmark = pytest.mark.unit


@pytest.fixture
def client(store, registry):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_registry] = lambda: registry
    return TestClient(app)


def _login(client, email, password="secret-password") -> dict:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def clerk_headers(client, seed_user):
    seed_user(
        email="clerk@example.com",
        permissions=(Permission.SALES_VIEW, Permission.SALES_CREATE),
        role_name="Clerk",
    )
    return _login(client, "clerk@example.com")


@pytest.fixture
def viewer_headers(client, seed_user):
    seed_user(email="viewer@example.com", permissions=(Permission.SALES_VIEW,), role_name="Viewer")
    return _login(client, "viewer@example.com")


def _problem(response, status: int, code: str) -> dict:
    assert response.status_code == status, response.text
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["status"] == status
    assert body["code"] == code
    return body


class TestAuthEndpoints:
    def test_login_sets_cookie_and_returns_user(self, client, seed_user):
        seed_user(email="ann@example.com")

        response = client.post(
            "/auth/login", json={"email": "ANN@example.com", "password": "secret-password"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "ann@example.com"
        assert "access_token" in response.cookies

    def test_login_wrong_password_is_401(self, client, seed_user):
        seed_user(email="ann@example.com")
        response = client.post(
            "/auth/login", json={"email": "ann@example.com", "password": "nope"}
        )
        body = _problem(response, 401, "UNAUTHENTICATED")
        assert body["detail"] == "Invalid email or password"

    def test_login_body_validation_is_422(self, client):
        response = client.post("/auth/login", json={"email": "a"})
        body = _problem(response, 422, "VALIDATION_ERROR")
        assert {"field", "msg"} <= set(body["errors"][0])

    def test_logout_is_idempotent(self, client):
        assert client.post("/auth/logout").json() == {"ok": True}
        assert client.post("/auth/logout").json() == {"ok": True}


class TestProcedureTransport:
    def test_mutation_then_query(self, client, clerk_headers):
        created = client.post(
            "/v1/rpc/customers.create_customer",
            json={"company_name": "Acme"},
            headers=clerk_headers,
        )
        assert created.status_code == 200, created.text
        customer = created.json()["data"]
        assert customer["customer_number"] == "CUST-1001"

        listed = client.get(
            "/v1/rpc/customers.get_customers",
            params={"input": json.dumps({"search": "acm"})},
            headers=clerk_headers,
        )
        assert listed.status_code == 200
        assert [c["id"] for c in listed.json()["data"]] == [customer["id"]]

    def test_cookie_session_is_accepted(self, client, seed_user):
        seed_user(email="ann@example.com", permissions=(Permission.SALES_VIEW,))
        client.post(
            "/auth/login", json={"email": "ann@example.com", "password": "secret-password"}
        )
        response = client.get("/v1/rpc/customers.get_customers")
        assert response.status_code == 200

    def test_anonymous_mutation_is_401(self, client):
        response = client.post("/v1/rpc/customers.create_customer", json={"company_name": "X"})
        _problem(response, 401, "UNAUTHENTICATED")
        assert response.headers["www-authenticate"] == "Bearer"

    def test_missing_permission_is_403(self, client, viewer_headers, store):
        response = client.post(
            "/v1/rpc/customers.create_customer",
            json={"company_name": "X"},
            headers=viewer_headers,
        )
        _problem(response, 403, "FORBIDDEN")
        with store.transaction() as uow:
            assert uow.customers.count() == 0

    def test_invalid_input_is_422_with_field_errors(self, client, clerk_headers):
        response = client.post(
            "/v1/rpc/customers.create_customer",
            json={"company_name": ""},
            headers=clerk_headers,
        )
        body = _problem(response, 422, "VALIDATION_ERROR")
        assert "company_name" in {e.get("field") for e in body["errors"]}

    def test_query_input_must_be_json_object(self, client, clerk_headers):
        response = client.get(
            "/v1/rpc/customers.get_customers",
            params={"input": "[1, 2]"},
            headers=clerk_headers,
        )
        body = _problem(response, 422, "VALIDATION_ERROR")
        assert body["errors"][0]["field"] == "input"

    def test_wrong_verb_is_405(self, client, clerk_headers):
        response = client.get("/v1/rpc/customers.create_customer", headers=clerk_headers)
        body = _problem(response, 405, "METHOD_NOT_ALLOWED")
        assert "use POST" in body["detail"]

    def test_unknown_procedure_is_404(self, client, clerk_headers):
        response = client.get("/v1/rpc/customers.nope", headers=clerk_headers)
        _problem(response, 404, "NOT_FOUND")

    def test_business_rule_is_412(self, client, clerk_headers):
        customer = client.post(
            "/v1/rpc/customers.create_customer",
            json={"company_name": "Acme"},
            headers=clerk_headers,
        ).json()["data"]
        invoice = client.post(
            "/v1/rpc/sales.create_invoice",
            json={
                "customer_id": customer["id"],
                "lines": [{"description": "Svc", "quantity": "1", "unit_price": "500"}],
            },
            headers=clerk_headers,
        ).json()["data"]

        response = client.post(
            "/v1/rpc/sales.record_payment",
            json={"invoice_id": invoice["id"], "amount": "600"},
            headers=clerk_headers,
        )

        body = _problem(response, 412, "PRECONDITION_FAILED")
        assert body["detail"] == "Payment amount ($600.00) exceeds balance due ($500.00)"

    def test_catalogue_lists_procedures(self, client):
        procedures = client.get("/v1/rpc").json()["procedures"]
        by_name = {p["name"]: p for p in procedures}
        assert by_name["customers.create_customer"]["kind"] == "mutation"
        assert by_name["customers.create_customer"]["permission"] == "sales:create"
        assert by_name["auth.get_session"]["permission"] is None


class TestOperationalEndpoints:
    def test_healthz(self, client):
        body = client.get("/healthz").json()
        assert body["ok"] is True
        assert body["db"] == "connected"

    def test_readyz_counts_procedures(self, client, registry):
        body = client.get("/readyz").json()
        assert body["procedures"] == len(registry)

    def test_metrics_are_public_by_default(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "erp_procedure" in response.text

    def test_request_id_is_echoed(self, client):
        response = client.get("/healthz", headers={"X-Request-Id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"
