import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from orgpay.models import Base, AccountStatus
from orgpay.crud.merchant_account import merchant_account
from orgpay.schemas.ledger import MerchantAccountCreate
from orgpay.core.config import settings


@pytest.fixture
async def engine():
    """Fresh in-memory ledger per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def account(db):
    """Active merchant account for org_1"""
    return await merchant_account.create(
        db,
        obj_in=MerchantAccountCreate(
            org_id="org_1",
            merchant_id="MERCHANT1",
            email="merchant@example.com",
            business_name="Org One",
            status=AccountStatus.ACTIVE.value,
        )
    )


@pytest.fixture
async def inactive_account(db):
    return await merchant_account.create(
        db,
        obj_in=MerchantAccountCreate(
            org_id="org_2",
            merchant_id="MERCHANT2",
            status=AccountStatus.INACTIVE.value,
        )
    )


@pytest.fixture
def webhook_settings(monkeypatch):
    monkeypatch.setattr(settings, "paypal_webhook_id", "WH-TEST")
    return settings


def capture_payload(
    order_id="ORDER1",
    capture_id="CAP1",
    amount="100.00",
    fee="5.00",
    currency="USD",
    status="COMPLETED",
    payer_email="buyer@example.com",
):
    payload = {
        "id": order_id,
        "status": "COMPLETED",
        "purchase_units": [
            {
                "description": "Consulting session",
                "payments": {
                    "captures": [
                        {
                            "id": capture_id,
                            "status": status,
                            "amount": {"currency_code": currency, "value": amount},
                            "seller_receivable_breakdown": {
                                "platform_fees": [
                                    {"amount": {"currency_code": currency, "value": fee}}
                                ]
                            },
                        }
                    ]
                },
            }
        ],
    }
    if payer_email:
        payload["payer"] = {"email_address": payer_email}
    return payload


def subscription_payload(subscription_id="sub_1", status="ACTIVE", plan_id="P-1", custom_id="org_1"):
    return {
        "id": subscription_id,
        "plan_id": plan_id,
        "status": status,
        "custom_id": custom_id,
        "start_time": "2026-01-01T00:00:00Z",
        "create_time": "2025-12-31T23:59:00Z",
        "subscriber": {"email_address": "subscriber@example.com"},
        "billing_info": {
            "next_billing_time": "2026-02-01T10:00:00Z",
            "last_payment": {
                "amount": {"currency_code": "USD", "value": "9.99"},
                "time": "2026-01-01T10:00:00Z",
            },
        },
        "links": [{"rel": "approve", "href": "https://www.paypal.com/webapps/billing/subscriptions?ba_token=BA-1"}],
    }


def plan_payload(plan_id="P-1", name="Pro", price="9.99", interval="MONTH"):
    return {
        "id": plan_id,
        "name": name,
        "description": f"{name} plan",
        "status": "ACTIVE",
        "billing_cycles": [
            {
                "tenure_type": "TRIAL",
                "frequency": {"interval_unit": interval, "interval_count": 1},
                "pricing_scheme": {"fixed_price": {"value": "0.00", "currency_code": "USD"}},
            },
            {
                "tenure_type": "REGULAR",
                "frequency": {"interval_unit": interval, "interval_count": 1},
                "pricing_scheme": {"fixed_price": {"value": price, "currency_code": "USD"}},
            },
        ],
    }


def webhook_payload(event_id="evt_1", event_type="PAYMENT.CAPTURE.REFUNDED", resource=None, resource_type="refund"):
    return {
        "id": event_id,
        "event_type": event_type,
        "resource_type": resource_type,
        "resource": resource if resource is not None else {
            "id": "REFUND1",
            "status": "COMPLETED",
            "amount": {"currency_code": "USD", "value": "100.00"},
            "links": [
                {"rel": "up", "href": "https://api-m.sandbox.paypal.com/v2/payments/captures/CAP1"}
            ],
        },
    }


SIGNED_HEADERS = {
    "PAYPAL-TRANSMISSION-ID": "tx-1",
    "PAYPAL-TRANSMISSION-TIME": "2026-01-01T00:00:00Z",
    "PAYPAL-TRANSMISSION-SIG": "c2lnbmF0dXJl",
    "PAYPAL-CERT-URL": "https://api.sandbox.paypal.com/v1/notifications/certs/CERT-1",
    "PAYPAL-AUTH-ALGO": "SHA256withRSA",
}
