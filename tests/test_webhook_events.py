from __future__ import annotations

import json

from app.modules.payments.events import (
    OrderPaidEvent,
    PaymentCapturedEvent,
    RefundProcessedEvent,
    SubscriptionActivatedEvent,
    UnrecognizedEvent,
    parse_webhook_event,
)
from tests.fakes import order_paid_event, payment_event, refund_event, subscription_event


def _encode(document: dict) -> bytes:
    return json.dumps(document).encode("utf-8")


def test_payment_captured_exposes_entity_and_transaction_id() -> None:
    document = payment_event("payment.captured", notes={"transactionId": "tx_1"})
    document["payload"]["payment"]["entity"]["acquirer_data"] = {"rrn": "123"}

    event = parse_webhook_event(_encode(document))

    assert isinstance(event, PaymentCapturedEvent)
    assert event.payment.id == "pay_1"
    assert event.payment.amount == 249900
    assert event.transaction_id == "tx_1"


def test_empty_list_notes_mean_no_correlation_id() -> None:
    event = parse_webhook_event(_encode(payment_event("payment.captured", notes=[])))

    assert isinstance(event, PaymentCapturedEvent)
    assert event.payment.notes == {}
    assert event.transaction_id is None


def test_blank_transaction_id_is_treated_as_missing() -> None:
    event = parse_webhook_event(_encode(payment_event("payment.captured", notes={"transactionId": "  "})))

    assert isinstance(event, PaymentCapturedEvent)
    assert event.transaction_id is None


def test_order_paid_prefers_order_notes() -> None:
    event = parse_webhook_event(
        _encode(order_paid_event(order_notes={"transactionId": "tx_order"}, payment_notes={"transactionId": "tx_pay"})),
    )

    assert isinstance(event, OrderPaidEvent)
    assert event.transaction_id == "tx_order"
    assert event.payment.id == "pay_1"


def test_refund_and_subscription_events_parse() -> None:
    refund = parse_webhook_event(_encode(refund_event("refund.processed", notes={"reason": "Duplicate"})))
    subscription = parse_webhook_event(
        _encode(subscription_event("subscription.activated", notes={"userId": "u", "planType": "gold"})),
    )

    assert isinstance(refund, RefundProcessedEvent)
    assert refund.refund.payment_id == "pay_1"
    assert refund.refund.note("reason") == "Duplicate"
    assert isinstance(subscription, SubscriptionActivatedEvent)
    assert subscription.subscription.note("planType") == "gold"
    assert subscription.subscription.current_end == 1775037600


def test_unknown_event_name_is_unrecognized() -> None:
    event = parse_webhook_event(b'{"event": "payment.authorized", "payload": {}}')

    assert event == UnrecognizedEvent(event="payment.authorized", reason="event is not handled")


def test_known_event_with_wrong_shape_fails_closed() -> None:
    event = parse_webhook_event(b'{"event": "payment.captured", "payload": {"payment": {}}}')

    assert isinstance(event, UnrecognizedEvent)
    assert event.event == "payment.captured"
    assert event.reason.startswith("payload shape mismatch")


def test_invalid_json_and_non_objects_are_unrecognized() -> None:
    assert parse_webhook_event(b"not json").reason == "body is not valid JSON"
    assert parse_webhook_event(b"[1, 2]").reason == "body is not a JSON object"
    assert parse_webhook_event(b"{}").reason == "event name is missing"
