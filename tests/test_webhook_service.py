import json
import pytest
from unittest.mock import AsyncMock, patch

from orgpay.crud import webhook_event, transaction, merchant_account
from orgpay.core.config import settings
from orgpay.core.exceptions import InvalidSignatureError, UpstreamUnavailableError, ValidationError
from orgpay.models import WebhookOutcome, AccountStatus
from orgpay.schemas.ledger import TransactionCreate, MerchantAccountCreate
from orgpay.services.paypal_service import paypal_service
from orgpay.services.webhook_service import webhook_service, is_paypal_cert_url
from conftest import webhook_payload, SIGNED_HEADERS


def body(payload):
    return json.dumps(payload).encode()


@pytest.fixture
def verified(webhook_settings):
    with patch.object(paypal_service, "verify_webhook_signature", new=AsyncMock(return_value=True)) as mock_verify:
        yield mock_verify


def completed_payload(event_id="evt_c1", merchant_id="MERCHANT1", order_id="ORDER1", capture_id="CAP1"):
    return webhook_payload(
        event_id=event_id,
        event_type="PAYMENT.CAPTURE.COMPLETED",
        resource_type="capture",
        resource={
            "id": capture_id,
            "status": "COMPLETED",
            "amount": {"currency_code": "USD", "value": "100.00"},
            "payee": {"merchant_id": merchant_id},
            "supplementary_data": {"related_ids": {"order_id": order_id}},
            "seller_receivable_breakdown": {
                "platform_fees": [{"amount": {"currency_code": "USD", "value": "5.00"}}]
            },
        },
    )


def test_cert_url_must_be_paypal_https():
    assert is_paypal_cert_url("https://api.paypal.com/v1/notifications/certs/CERT")
    assert is_paypal_cert_url("https://api.sandbox.paypal.com/certs/CERT")
    assert not is_paypal_cert_url("http://api.paypal.com/certs/CERT")
    assert not is_paypal_cert_url("https://paypal.com.evil.example/certs/CERT")
    assert not is_paypal_cert_url("https://evilpaypal.com/certs/CERT")


async def test_missing_headers_rejected_before_anything_is_stored(db, verified):
    headers = {k: v for k, v in SIGNED_HEADERS.items() if k != "PAYPAL-TRANSMISSION-SIG"}

    with pytest.raises(InvalidSignatureError) as exc:
        await webhook_service.receive_webhook(db, body(webhook_payload()), headers)

    assert exc.value.status_code == 401
    verified.assert_not_called()
    assert await webhook_event.count(db) == 0


async def test_untrusted_cert_url_rejected(db, verified):
    headers = dict(SIGNED_HEADERS, **{"PAYPAL-CERT-URL": "https://example.com/cert.pem"})
    with pytest.raises(InvalidSignatureError):
        await webhook_service.receive_webhook(db, body(webhook_payload()), headers)
    verified.assert_not_called()


async def test_unconfigured_webhook_id_fails_closed(db, monkeypatch):
    monkeypatch.setattr(settings, "paypal_webhook_id", "")
    with pytest.raises(InvalidSignatureError):
        await webhook_service.receive_webhook(db, body(webhook_payload()), SIGNED_HEADERS)
    assert await webhook_event.count(db) == 0


async def test_failed_verification_stores_nothing(db, webhook_settings):
    with patch.object(paypal_service, "verify_webhook_signature", new=AsyncMock(return_value=False)):
        with pytest.raises(InvalidSignatureError):
            await webhook_service.receive_webhook(db, body(webhook_payload()), SIGNED_HEADERS)
    assert await webhook_event.count(db) == 0


async def test_verification_outage_is_retryable(db, webhook_settings):
    with patch.object(paypal_service, "verify_webhook_signature", new=AsyncMock(side_effect=UpstreamUnavailableError())):
        with pytest.raises(UpstreamUnavailableError):
            await webhook_service.receive_webhook(db, body(webhook_payload()), SIGNED_HEADERS)
    assert await webhook_event.count(db) == 0


async def test_verification_receives_headers_and_event(db, verified):
    payload = webhook_payload()
    await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    kwargs = verified.call_args.kwargs
    assert kwargs["webhook_id"] == "WH-TEST"
    assert kwargs["transmission_id"] == "tx-1"
    assert kwargs["auth_algo"] == "SHA256withRSA"
    assert kwargs["webhook_event"] == payload


async def test_malformed_body_rejected(db, verified):
    with pytest.raises(ValidationError):
        await webhook_service.receive_webhook(db, b"not json", SIGNED_HEADERS)
    assert await webhook_event.count(db) == 0


async def test_refund_event_is_stored_once(db, verified):
    payload = webhook_payload(event_id="evt_1", event_type="PAYMENT.CAPTURE.REFUNDED")

    first = await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)
    second = await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    assert first == {"status": "ok"}
    assert second == {"status": "ok", "duplicate": True}
    assert await webhook_event.count(db) == 1
    stored = await webhook_event.get_by_event_id(db, "evt_1")
    assert stored.processed is True
    assert stored.event_type == "PAYMENT.CAPTURE.REFUNDED"
    assert stored.outcome == WebhookOutcome.SUCCESS.value


async def test_concurrent_duplicate_loses_the_insert(db, verified):
    payload = webhook_payload(event_id="evt_race")
    await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    # The second delivery passed the lookup before the first one committed
    with patch.object(webhook_event, "get_by_event_id", new=AsyncMock(return_value=None)):
        result = await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    assert result == {"status": "ok", "duplicate": True}
    assert await webhook_event.count(db) == 1


async def test_refund_updates_transaction_by_capture_id(db, account, verified):
    await transaction.create(
        db,
        obj_in=TransactionCreate(
            paypal_account_id=account.id, order_id="ORDER1", capture_id="CAP1", amount="100.00", status="COMPLETED"
        )
    )

    await webhook_service.receive_webhook(db, body(webhook_payload()), SIGNED_HEADERS)

    row = await transaction.get_by_capture_id(db, "CAP1")
    assert row.status == "REFUNDED"


async def test_denied_updates_transaction_by_order_id(db, account, verified):
    await transaction.create(
        db,
        obj_in=TransactionCreate(paypal_account_id=account.id, order_id="ORDER7", amount="10.00", status="PENDING")
    )
    payload = webhook_payload(
        event_id="evt_d1",
        event_type="PAYMENT.CAPTURE.DENIED",
        resource_type="capture",
        resource={"id": "CAP7", "status": "DENIED", "supplementary_data": {"related_ids": {"order_id": "ORDER7"}}},
    )

    await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    assert (await transaction.get_by_order_id(db, "ORDER7")).status == "DENIED"


async def test_completed_rederives_missing_transaction(db, account, verified):
    await webhook_service.receive_webhook(db, body(completed_payload()), SIGNED_HEADERS)

    row = await transaction.get_by_order_id(db, "ORDER1")
    assert row is not None
    assert row.paypal_account_id == account.id
    assert row.amount == "100.00"
    assert row.platform_fee == "5.00"
    assert row.status == "COMPLETED"
    stored = await webhook_event.get_by_event_id(db, "evt_c1")
    assert stored.paypal_account_id == account.id
    assert stored.processed is True


def refund_payload(event_id, value, total_refunded=None, capture_id="CAP1"):
    resource = {
        "id": f"REFUND-{event_id}",
        "status": "COMPLETED",
        "amount": {"currency_code": "USD", "value": value},
        "links": [{"rel": "up", "href": f"https://api-m.sandbox.paypal.com/v2/payments/captures/{capture_id}"}],
    }
    if total_refunded:
        resource["seller_payable_breakdown"] = {"total_refunded_amount": {"currency_code": "USD", "value": total_refunded}}
    return webhook_payload(event_id=event_id, resource=resource)


async def add_captured(db, account, status="COMPLETED"):
    return await transaction.create(
        db,
        obj_in=TransactionCreate(
            paypal_account_id=account.id, order_id="ORDER1", capture_id="CAP1", amount="100.00", status=status
        )
    )


async def test_late_completed_keeps_refunded_status(db, account, verified):
    await add_captured(db, account, status="REFUNDED")

    await webhook_service.receive_webhook(db, body(completed_payload()), SIGNED_HEADERS)

    row = await transaction.get_by_capture_id(db, "CAP1")
    assert row.status == "REFUNDED"
    assert row.platform_fee == "5.00"
    assert (await webhook_event.get_by_event_id(db, "evt_c1")).processed is True


async def test_late_completed_keeps_denied_status(db, account, verified):
    await add_captured(db, account, status="DENIED")
    await webhook_service.receive_webhook(db, body(completed_payload()), SIGNED_HEADERS)
    assert (await transaction.get_by_order_id(db, "ORDER1")).status == "DENIED"


async def test_partial_refunds_add_up(db, account, verified):
    await add_captured(db, account)

    await webhook_service.receive_webhook(db, body(refund_payload("evt_r1", "40.00")), SIGNED_HEADERS)
    row = await transaction.get_by_order_id(db, "ORDER1")
    assert row.status == "PARTIALLY_REFUNDED"
    assert row.meta_data["refunded_amount"] == "40.00"

    await webhook_service.receive_webhook(db, body(refund_payload("evt_r2", "60.00")), SIGNED_HEADERS)
    row = await transaction.get_by_order_id(db, "ORDER1")
    assert row.status == "REFUNDED"
    assert row.meta_data["refunded_amount"] == "100.00"


async def test_refund_uses_paypal_running_total(db, account, verified):
    await add_captured(db, account)

    await webhook_service.receive_webhook(
        db, body(refund_payload("evt_r1", "10.00", total_refunded="30.00")), SIGNED_HEADERS
    )

    row = await transaction.get_by_order_id(db, "ORDER1")
    assert row.status == "PARTIALLY_REFUNDED"
    assert row.meta_data["refunded_amount"] == "30.00"


async def test_unknown_event_type_is_ignored(db, verified):
    payload = webhook_payload(event_id="evt_x", event_type="BILLING.PLAN.CREATED", resource={"id": "P-1"})

    assert await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS) == {"status": "ok"}

    stored = await webhook_event.get_by_event_id(db, "evt_x")
    assert stored.processed is True
    assert stored.outcome == WebhookOutcome.IGNORED.value


async def test_handler_failure_is_kept_for_retry(db, verified):
    payload = webhook_payload(event_id="evt_fail", event_type="PAYMENT.CAPTURE.DENIED", resource={"id": "CAP1"})
    failing = AsyncMock(side_effect=RuntimeError("boom"))

    with patch.dict(webhook_service.handlers, {"PAYMENT.CAPTURE.DENIED": failing}):
        result = await webhook_service.receive_webhook(db, body(payload), SIGNED_HEADERS)

    assert result == {"status": "ok"}
    stored = await webhook_event.get_by_event_id(db, "evt_fail")
    assert stored.processed is False
    assert stored.outcome == WebhookOutcome.FAILED.value
    assert stored.attempts == 1
    assert stored.last_error == "boom"


async def test_partial_event_succeeds_on_retry(db, verified):
    # Merchant not connected yet, so the transaction cannot be derived
    await webhook_service.receive_webhook(db, body(completed_payload(merchant_id="MERCHANT_LATE")), SIGNED_HEADERS)
    stored = await webhook_event.get_by_event_id(db, "evt_c1")
    assert stored.outcome == WebhookOutcome.PARTIAL.value
    assert stored.processed is False

    late = await merchant_account.create(
        db,
        obj_in=MerchantAccountCreate(org_id="org_late", merchant_id="MERCHANT_LATE", status=AccountStatus.ACTIVE.value)
    )
    result = await webhook_service.retry_pending_events(db)

    assert (result.retried, result.succeeded, result.failed) == (1, 1, 0)
    stored = await webhook_event.get_by_event_id(db, "evt_c1")
    assert stored.processed is True
    assert stored.attempts == 2
    assert stored.paypal_account_id == late.id
    assert (await transaction.get_by_order_id(db, "ORDER1")).paypal_account_id == late.id


async def test_retry_stops_after_max_attempts(db, verified, monkeypatch):
    monkeypatch.setattr(settings, "webhook_max_attempts", 2)
    await webhook_service.receive_webhook(db, body(completed_payload(merchant_id="NOBODY")), SIGNED_HEADERS)

    first = await webhook_service.retry_pending_events(db)
    second = await webhook_service.retry_pending_events(db)

    assert (first.retried, first.failed) == (1, 1)
    assert second.retried == 0


async def test_register_webhook_stores_id(db, account):
    with patch.object(paypal_service, "create_webhook", new=AsyncMock(return_value={"id": "WH-9", "url": "https://pay.example.com/hook"})) as mock_create:
        result = await webhook_service.register_webhook(db, "org_1", "https://pay.example.com/hook")

    assert result == {"id": "WH-9", "url": "https://pay.example.com/hook"}
    assert mock_create.call_args.args[1] == [
        "PAYMENT.CAPTURE.COMPLETED",
        "PAYMENT.CAPTURE.DENIED",
        "PAYMENT.CAPTURE.REFUNDED",
    ]
    assert (await merchant_account.get_by_org_id(db, "org_1")).webhook_id == "WH-9"
