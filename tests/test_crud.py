from datetime import datetime

from orgpay.crud import merchant_account, transaction, subscription, webhook_event
from orgpay.crud.transaction import merge_status
from orgpay.models import AccountStatus, WebhookOutcome
from orgpay.schemas.ledger import MerchantAccountCreate, TransactionCreate, WebhookEventCreate
from orgpay.schemas.paypal import SubscriptionSnapshot
from conftest import subscription_payload


async def test_get_by_org_id_prefers_active_account(db):
    await merchant_account.create(
        db, obj_in=MerchantAccountCreate(org_id="org_9", merchant_id="OLD", status=AccountStatus.INACTIVE.value)
    )
    active = await merchant_account.create(
        db, obj_in=MerchantAccountCreate(org_id="org_9", merchant_id="NEW", status=AccountStatus.ACTIVE.value)
    )

    found = await merchant_account.get_by_org_id(db, "org_9")
    assert found.id == active.id
    assert await merchant_account.get_active_by_org_id(db, "org_unknown") is None


async def test_set_status_keeps_row(db, account):
    await merchant_account.set_status(db, account, AccountStatus.INACTIVE)

    assert await merchant_account.get_active_by_org_id(db, "org_1") is None
    row = await merchant_account.get_by_org_id(db, "org_1")
    assert row.status == "inactive"
    assert await merchant_account.count(db) == 1


async def test_recent_transactions_newest_first_and_capped(db, account):
    for day in range(1, 5):
        await transaction.create_with_extra(
            db,
            obj_in=TransactionCreate(
                paypal_account_id=account.id,
                order_id=f"ORDER{day}",
                amount="10.00",
                status="COMPLETED",
            ),
            extra_data={"created_at": datetime(2026, 1, day)}
        )

    rows = await transaction.get_recent_for_account(db, account.id, limit=3)
    assert [r.order_id for r in rows] == ["ORDER4", "ORDER3", "ORDER2"]


def test_merge_status_never_moves_back():
    assert merge_status("PENDING", "COMPLETED") == "COMPLETED"
    assert merge_status("REFUNDED", "COMPLETED") == "REFUNDED"
    assert merge_status("PARTIALLY_REFUNDED", "COMPLETED") == "PARTIALLY_REFUNDED"
    assert merge_status("PARTIALLY_REFUNDED", "REFUNDED") == "REFUNDED"
    assert merge_status("DENIED", "COMPLETED") == "DENIED"
    assert merge_status("COMPLETED", None) == "COMPLETED"


async def test_upsert_by_order_id_merges_into_existing_row(db, account):
    first, created = await transaction.upsert_by_order_id(
        db,
        obj_in=TransactionCreate(paypal_account_id=account.id, order_id="ORDER1", amount="10.00", status="PENDING")
    )
    assert created is True

    second, created = await transaction.upsert_by_order_id(
        db,
        obj_in=TransactionCreate(
            paypal_account_id=account.id,
            order_id="ORDER1",
            capture_id="CAP1",
            amount="10.00",
            status="COMPLETED",
            platform_fee="1.00",
        )
    )

    assert created is False
    assert second.id == first.id
    assert (second.status, second.capture_id, second.platform_fee) == ("COMPLETED", "CAP1", "1.00")
    assert await transaction.count(db, filters={"order_id": "ORDER1"}) == 1


async def test_upsert_snapshot_creates_then_updates(db, account):
    first = SubscriptionSnapshot.from_payload(subscription_payload(status="ACTIVE"))
    row, created = await subscription.upsert_snapshot(db, snapshot=first, org_id="org_1", paypal_account_id=account.id)
    assert created is True
    assert row.status == "ACTIVE"
    assert row.last_payment_amount == "9.99"

    second = SubscriptionSnapshot.from_payload({"id": "sub_1", "status": "SUSPENDED"})
    row, created = await subscription.upsert_snapshot(db, snapshot=second, org_id="org_1", paypal_account_id=account.id)
    assert created is False
    assert row.status == "SUSPENDED"
    assert row.buyer_email == "subscriber@example.com"
    assert row.next_billing_date is not None
    assert await subscription.count(db, filters={"subscription_id": "sub_1"}) == 1


async def test_webhook_create_if_absent_is_atomic(db):
    event = WebhookEventCreate(event_id="evt_9", event_type="PAYMENT.CAPTURE.DENIED")

    assert await webhook_event.create_if_absent(db, obj_in=event) is not None
    assert await webhook_event.create_if_absent(db, obj_in=event) is None
    assert await webhook_event.count(db) == 1


async def test_record_outcome_and_retry_queue(db):
    ok = await webhook_event.create(db, obj_in=WebhookEventCreate(event_id="evt_ok", event_type="X"))
    partial = await webhook_event.create(db, obj_in=WebhookEventCreate(event_id="evt_partial", event_type="X"))
    exhausted = await webhook_event.create(db, obj_in=WebhookEventCreate(event_id="evt_dead", event_type="X"))

    await webhook_event.record_outcome(db, ok, WebhookOutcome.SUCCESS)
    await webhook_event.record_outcome(db, partial, WebhookOutcome.PARTIAL, "no transaction")
    for _ in range(3):
        await webhook_event.record_outcome(db, exhausted, WebhookOutcome.FAILED, "boom")

    assert ok.processed is True
    assert partial.processed is False
    assert partial.attempts == 1
    assert partial.last_error == "no transaction"

    retryable = await webhook_event.get_retryable(db, max_attempts=3)
    assert [e.event_id for e in retryable] == ["evt_partial"]
