import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from unittest.mock import AsyncMock, patch

from orgpay.main import app
from orgpay.core.config import settings
from orgpay.core.database import get_db
from orgpay.core.exceptions import PayPalAPIError
from orgpay.crud import subscription as subscription_crud, merchant_account
from orgpay.schemas.paypal import SubscriptionSnapshot
from orgpay.services.paypal_service import paypal_service
from conftest import subscription_payload, webhook_payload


def auth_headers(org_id="org_1"):
    token = jwt.encode({"sub": "user_1", "org_id": org_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(db):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_create_order_missing_fields(client):
    response = await client.post("/api/paypal/create-order", json={"orgId": "org_1", "amount": "10.00"})
    assert response.status_code == 400
    assert "platformFee" in response.json()["detail"]


async def test_create_order_without_account(client):
    response = await client.post(
        "/api/paypal/create-order",
        json={"orgId": "org_missing", "amount": "10.00", "platformFee": "1.00"},
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "PayPal account not found"


async def test_create_order_returns_order(client, account):
    remote = {"id": "ORDER1", "status": "CREATED", "links": [{"rel": "approve", "href": "https://paypal.test/a"}]}
    with patch.object(paypal_service, "create_order", new=AsyncMock(return_value=remote)):
        response = await client.post(
            "/api/paypal/create-order",
            json={"orgId": "org_1", "amount": "10.00", "platformFee": "1.00"},
        )

    assert response.status_code == 200
    assert response.json()["id"] == "ORDER1"
    assert response.json()["status"] == "CREATED"


async def test_capture_passes_paypal_status_through(client, account):
    error = PayPalAPIError(422, "Order not approved", details=[{"issue": "ORDER_NOT_APPROVED"}])
    with patch.object(paypal_service, "capture_order", new=AsyncMock(side_effect=error)):
        response = await client.post("/api/paypal/capture-order", json={"orgId": "org_1", "orderId": "ORDER1"})

    assert response.status_code == 422
    assert response.json()["detail"]["details"] == [{"issue": "ORDER_NOT_APPROVED"}]


async def test_create_subscription_requires_token(client, account):
    response = await client.post("/api/paypal/create-subscription", json={"planId": "P-1"})
    assert response.status_code == 401


async def test_create_subscription(client, account):
    remote = subscription_payload(status="APPROVAL_PENDING")
    with patch.object(paypal_service, "create_subscription", new=AsyncMock(return_value=remote)):
        response = await client.post(
            "/api/paypal/create-subscription", json={"planId": "P-1"}, headers=auth_headers()
        )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "sub_1"
    assert body["status"] == "APPROVAL_PENDING"
    assert body["approve_url"].startswith("https://www.paypal.com/")


async def test_validate_subscription_response_uses_camel_case(client, account):
    with patch.object(paypal_service, "get_subscription", new=AsyncMock(return_value=subscription_payload())):
        response = await client.post(
            "/api/paypal/validate-subscription", json={"subscriptionId": "sub_1"}, headers=auth_headers()
        )

    assert response.status_code == 200
    assert response.json()["subscriptionId"] == "sub_1"
    assert response.json()["status"] == "ACTIVE"


async def test_cancel_subscription_of_other_org_is_forbidden(client, db, account):
    await subscription_crud.upsert_snapshot(
        db,
        snapshot=SubscriptionSnapshot.from_payload(subscription_payload()),
        org_id="org_1",
        paypal_account_id=account.id,
    )

    with patch.object(paypal_service, "cancel_subscription", new=AsyncMock()) as mock_cancel:
        response = await client.post(
            "/api/paypal/cancel-subscription", json={"subscriptionId": "sub_1"}, headers=auth_headers("org_other")
        )

    assert response.status_code == 403
    mock_cancel.assert_not_called()


async def test_webhook_without_signature_headers(client, webhook_settings):
    response = await client.post("/api/paypal/webhook", json=webhook_payload())
    assert response.status_code == 401


async def test_transactions_for_inactive_account(client, inactive_account):
    response = await client.get("/api/paypal/transactions", params={"orgId": "org_2"})
    assert response.status_code == 200
    assert response.json() == []


async def test_transactions_require_org(client):
    response = await client.get("/api/paypal/transactions")
    assert response.status_code == 400


async def test_connected_account_lifecycle(client, db):
    response = await client.get("/api/paypal/connected-account", params={"orgId": "org_1"})
    assert response.status_code == 404

    response = await client.post(
        "/api/paypal/connected-account",
        json={"merchantId": "MERCHANT1", "email": "merchant@example.com", "businessName": "Org One"},
        headers=auth_headers(),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["merchantId"] == "MERCHANT1"
    assert body["businessName"] == "Org One"
    assert body["status"] == "active"
    assert "credentials" not in body

    response = await client.get("/api/paypal/connected-account", params={"orgId": "org_1"})
    assert response.status_code == 200
    assert response.json()["orgId"] == "org_1"

    response = await client.delete("/api/paypal/connected-account", headers=auth_headers())
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"

    response = await client.get("/api/paypal/connected-account", params={"orgId": "org_1"})
    assert response.status_code == 404
    assert await merchant_account.count(db) == 1


async def test_connect_account_for_other_org_is_forbidden(client):
    response = await client.post(
        "/api/paypal/connected-account",
        json={"orgId": "org_other", "merchantId": "MERCHANT9"},
        headers=auth_headers(),
    )
    assert response.status_code == 403


async def test_subscription_return_redirects(client, account, monkeypatch):
    monkeypatch.setattr(settings, "frontend_url", "https://app.example.com")
    with patch.object(paypal_service, "find_subscription", new=AsyncMock(return_value=subscription_payload())):
        response = await client.get(
            "/api/paypal/return/subscription", params={"orgId": "org_1", "subscription_id": "sub_1"}
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://app.example.com/subscription-success?subscription_id=sub_1"


async def test_webhook_retry_requires_token(client):
    response = await client.post("/api/paypal/webhook/retry")
    assert response.status_code == 401


async def test_webhook_retry_with_token(client):
    response = await client.post("/api/paypal/webhook/retry", headers=auth_headers())
    assert response.status_code == 200
    assert response.json() == {"retried": 0, "succeeded": 0, "failed": 0}
