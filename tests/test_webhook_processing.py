from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.enums import (
    AppointmentStatusEnum,
    EmailTypeEnum,
    EnrollmentStatusEnum,
    SubscriptionStatusEnum,
    TransactionStatusEnum,
    TransactionTypeEnum,
)
from app.modules.payments.events import parse_webhook_event
from app.shared.exceptions import SignatureVerificationException
from tests.fakes import (
    FakeAppointment,
    FakeCourse,
    FakeEmailDispatcher,
    FakeEnrollment,
    FakeTransaction,
    build_webhook_harness,
    make_user,
    order_paid_event,
    payment_event,
    refund_event,
    sign,
    subscription_event,
)


def _course_purchase(user, course, **overrides) -> FakeTransaction:
    values = {
        "user_id": user.id,
        "type": TransactionTypeEnum.COURSE_PURCHASE,
        "amount": course.price,
        "description": f"Course: {course.title}",
        "course_id": course.id,
    }
    values.update(overrides)
    return FakeTransaction(**values)


@pytest.mark.asyncio
async def test_captured_payment_completes_transaction_and_enrolls_once() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS Intensive", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))

    first = await harness.service.process(body, signature)
    second = await harness.service.process(body, signature)

    assert first == "handled"
    assert second == "ignored"
    assert transaction.status == TransactionStatusEnum.COMPLETED
    assert transaction.gateway_payment_id == "pay_1"
    assert transaction.gateway_response["order_id"] == "order_1"
    assert transaction.gateway_response["method"] == "upi"
    assert "captured_at" in transaction.gateway_response
    assert course.total_students == 1
    assert harness.courses.enrollments[(user.id, course.id)].status == EnrollmentStatusEnum.ACTIVE
    assert harness.audit.actions() == ["payments.transaction.complete"]
    assert harness.emails.types() == [EmailTypeEnum.COURSE_ENROLLMENT]
    course_email = harness.emails.sent[0]["data"]
    assert course_email["course_name"] == "IELTS Intensive"
    assert course_email["course_url"] == f"https://bnoverseas.test/courses/{course.id}"


@pytest.mark.asyncio
async def test_order_paid_after_payment_captured_is_a_duplicate() -> None:
    user = make_user()
    course = FakeCourse(title="PTE Core", price=Decimal("1999.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    notes = {"transactionId": str(transaction.id)}

    captured = await harness.service.dispatch(parse_webhook_event(sign(payment_event("payment.captured", notes=notes))[0]))
    paid = await harness.service.dispatch(parse_webhook_event(sign(order_paid_event(order_notes=notes))[0]))

    assert captured == "handled"
    assert paid == "ignored"
    assert course.total_students == 1
    assert len(harness.emails.sent) == 1


@pytest.mark.asyncio
async def test_order_paid_falls_back_to_payment_notes() -> None:
    user = make_user()
    course = FakeCourse(title="GRE Quant", price=Decimal("2999.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign(order_paid_event(payment_notes={"transactionId": str(transaction.id)}))

    outcome = await harness.service.process(body, signature)

    assert outcome == "handled"
    assert transaction.status == TransactionStatusEnum.COMPLETED
    assert transaction.gateway_response["paid_at"]
    assert transaction.gateway_response["status"] == "paid"


@pytest.mark.asyncio
async def test_appointment_booking_is_confirmed_without_enrollment() -> None:
    user = make_user()
    appointment = FakeAppointment(user_id=user.id)
    transaction = FakeTransaction(
        user_id=user.id,
        type=TransactionTypeEnum.APPOINTMENT_BOOKING,
        amount=Decimal("1500.00"),
        appointment_id=appointment.id,
    )
    harness = build_webhook_harness(transactions=[transaction], appointments=[appointment], users=[user])
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))

    outcome = await harness.service.process(body, signature)

    assert outcome == "handled"
    assert appointment.status == AppointmentStatusEnum.CONFIRMED
    assert harness.courses.enrollments == {}
    assert harness.emails.types() == [EmailTypeEnum.APPOINTMENT_CONFIRMATION]
    assert harness.emails.sent[0]["data"]["consultant_name"] == "Anita Desai"
    assert harness.emails.sent[0]["data"]["duration"] == 45


@pytest.mark.asyncio
async def test_missing_transaction_id_mutates_nothing() -> None:
    user = make_user()
    course = FakeCourse(title="TOEFL", price=Decimal("999.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign(payment_event("payment.captured", notes={"userId": str(user.id)}))

    outcome = await harness.service.process(body, signature)

    assert outcome == "ignored"
    assert transaction.status == TransactionStatusEnum.PENDING
    assert course.total_students == 0
    assert harness.audit.audit_logs == []
    assert harness.emails.sent == []


@pytest.mark.asyncio
async def test_unknown_transaction_and_malformed_id_are_ignored() -> None:
    harness = build_webhook_harness()

    unknown = await harness.service.process(
        *sign(payment_event("payment.captured", notes={"transactionId": str(uuid4())})),
    )
    malformed = await harness.service.process(
        *sign(payment_event("payment.captured", notes={"transactionId": "not-a-uuid"})),
    )

    assert unknown == "ignored"
    assert malformed == "ignored"


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged_without_changes() -> None:
    user = make_user()
    course = FakeCourse(title="SAT", price=Decimal("3499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign({"event": "payment.authorized", "payload": {}})

    outcome = await harness.service.process(body, signature)

    assert outcome == "ignored"
    assert transaction.status == TransactionStatusEnum.PENDING
    assert harness.payments.savepoints == 0


@pytest.mark.asyncio
async def test_malformed_json_is_ignored_after_signature_check() -> None:
    harness = build_webhook_harness()
    body, signature = sign(b"{not json")

    assert await harness.service.process(body, signature) == "ignored"


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected_before_any_mutation() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))
    tampered = body.replace(b"249900", b"100")

    with pytest.raises(SignatureVerificationException):
        await harness.service.process(tampered, signature)
    with pytest.raises(SignatureVerificationException):
        await harness.service.process(body, None)

    assert transaction.status == TransactionStatusEnum.PENDING
    assert course.total_students == 0


@pytest.mark.asyncio
async def test_payment_failed_marks_pending_transaction_and_sends_email() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    body, signature = sign(
        payment_event(
            "payment.failed",
            notes={"transactionId": str(transaction.id)},
            error_code="BAD_REQUEST_ERROR",
            error_description="Card declined by issuer",
        ),
    )

    outcome = await harness.service.process(body, signature)

    assert outcome == "handled"
    assert transaction.status == TransactionStatusEnum.FAILED
    assert transaction.failure_reason == "Card declined by issuer"
    assert transaction.gateway_response["error_code"] == "BAD_REQUEST_ERROR"
    assert harness.audit.actions() == ["payments.transaction.fail"]
    assert harness.emails.types() == [EmailTypeEnum.PAYMENT_FAILED]


@pytest.mark.asyncio
async def test_payment_failed_defaults_reason_and_can_be_recovered_by_capture() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    notes = {"transactionId": str(transaction.id)}

    await harness.service.process(*sign(payment_event("payment.failed", notes=notes)))
    assert transaction.failure_reason == "Payment failed"

    outcome = await harness.service.process(*sign(payment_event("payment.captured", payment_id="pay_2", notes=notes)))

    assert outcome == "handled"
    assert transaction.status == TransactionStatusEnum.COMPLETED
    assert transaction.failure_reason is None
    assert transaction.gateway_payment_id == "pay_2"


@pytest.mark.asyncio
async def test_payment_failed_after_completion_is_ignored() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course, status=TransactionStatusEnum.COMPLETED)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])

    outcome = await harness.service.process(
        *sign(payment_event("payment.failed", notes={"transactionId": str(transaction.id)})),
    )

    assert outcome == "ignored"
    assert transaction.status == TransactionStatusEnum.COMPLETED
    assert harness.emails.sent == []


@pytest.mark.asyncio
async def test_refund_created_then_processed_revokes_enrollment_once() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"), total_students=1)
    enrollment = FakeEnrollment(user_id=user.id, course_id=course.id)
    transaction = _course_purchase(
        user,
        course,
        status=TransactionStatusEnum.COMPLETED,
        gateway_payment_id="pay_1",
    )
    harness = build_webhook_harness(
        transactions=[transaction],
        courses=[course],
        enrollments=[enrollment],
        users=[user],
    )

    created = await harness.service.process(
        *sign(refund_event("refund.created", amount=150000, notes={"reason": "Changed plans"})),
    )
    processed = await harness.service.process(*sign(refund_event("refund.processed")))
    replayed = await harness.service.process(*sign(refund_event("refund.processed")))

    assert (created, processed, replayed) == ("handled", "handled", "ignored")
    assert transaction.status == TransactionStatusEnum.REFUNDED
    assert transaction.refund_amount == Decimal("1500.00")
    assert transaction.refund_reason == "Changed plans"
    assert enrollment.status == EnrollmentStatusEnum.REFUNDED
    assert course.total_students == 0
    assert harness.audit.actions() == ["payments.transaction.refund", "payments.entitlement.revoke"]
    assert harness.emails.types() == [EmailTypeEnum.PAYMENT_REFUNDED]
    assert harness.emails.sent[0]["data"]["refund_amount"] == "1500.00"


@pytest.mark.asyncio
async def test_refund_processed_before_created_still_revokes() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"), total_students=3)
    enrollment = FakeEnrollment(user_id=user.id, course_id=course.id)
    transaction = _course_purchase(
        user,
        course,
        status=TransactionStatusEnum.COMPLETED,
        gateway_payment_id="pay_1",
    )
    harness = build_webhook_harness(
        transactions=[transaction],
        courses=[course],
        enrollments=[enrollment],
        users=[user],
    )

    processed = await harness.service.process(*sign(refund_event("refund.processed")))
    created = await harness.service.process(*sign(refund_event("refund.created")))

    assert processed == "handled"
    assert created == "ignored"
    assert transaction.status == TransactionStatusEnum.REFUNDED
    assert transaction.refund_reason == "Refund requested"
    assert enrollment.status == EnrollmentStatusEnum.REFUNDED
    assert course.total_students == 2


@pytest.mark.asyncio
async def test_refund_processed_cancels_appointment_with_reason() -> None:
    user = make_user()
    appointment = FakeAppointment(user_id=user.id, status=AppointmentStatusEnum.CONFIRMED)
    transaction = FakeTransaction(
        user_id=user.id,
        type=TransactionTypeEnum.APPOINTMENT_BOOKING,
        amount=Decimal("1500.00"),
        appointment_id=appointment.id,
        status=TransactionStatusEnum.REFUNDED,
        gateway_payment_id="pay_1",
    )
    harness = build_webhook_harness(transactions=[transaction], appointments=[appointment], users=[user])

    outcome = await harness.service.process(*sign(refund_event("refund.processed")))

    assert outcome == "handled"
    assert appointment.status == AppointmentStatusEnum.CANCELLED
    assert appointment.cancel_reason == "Payment refunded"


@pytest.mark.asyncio
async def test_refund_for_unknown_payment_is_ignored() -> None:
    harness = build_webhook_harness()

    outcome = await harness.service.process(*sign(refund_event("refund.processed", payment_id="pay_unknown")))

    assert outcome == "ignored"


@pytest.mark.asyncio
async def test_email_failure_does_not_undo_fulfillment() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(
        transactions=[transaction],
        courses=[course],
        users=[user],
        emails=FakeEmailDispatcher(fail_with=RuntimeError("smtp down")),
    )

    outcome = await harness.service.process(
        *sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)})),
    )

    assert outcome == "handled"
    assert transaction.status == TransactionStatusEnum.COMPLETED
    assert harness.courses.enrollments[(user.id, course.id)].status == EnrollmentStatusEnum.ACTIVE


@pytest.mark.asyncio
async def test_handler_error_is_contained_and_counted_as_failed(monkeypatch: pytest.MonkeyPatch) -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])

    async def _broken(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(harness.courses, "create_enrollment", _broken)

    outcome = await harness.service.process(
        *sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)})),
    )

    assert outcome == "failed"
    assert harness.emails.sent == []


@pytest.mark.asyncio
async def test_repurchase_after_refund_reactivates_enrollment() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    enrollment = FakeEnrollment(user_id=user.id, course_id=course.id, status=EnrollmentStatusEnum.REFUNDED)
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(
        transactions=[transaction],
        courses=[course],
        enrollments=[enrollment],
        users=[user],
    )

    await harness.service.process(
        *sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)})),
    )

    assert enrollment.status == EnrollmentStatusEnum.ACTIVE
    assert course.total_students == 1


@pytest.mark.asyncio
async def test_purchase_scenario_with_duplicate_and_refund() -> None:
    user = make_user()
    course = FakeCourse(title="IELTS Academic", price=Decimal("2499.00"))
    transaction = _course_purchase(user, course)
    harness = build_webhook_harness(transactions=[transaction], courses=[course], users=[user])
    notes = {"transactionId": str(transaction.id)}

    await harness.service.process(*sign(payment_event("payment.captured", payment_id="pay_9", notes=notes)))
    await harness.service.process(*sign(payment_event("payment.captured", payment_id="pay_9", notes=notes)))
    assert course.total_students == 1
    assert len(harness.courses.enrollments) == 1

    await harness.service.process(*sign(refund_event("refund.created", payment_id="pay_9")))
    await harness.service.process(*sign(refund_event("refund.processed", payment_id="pay_9")))

    assert transaction.status == TransactionStatusEnum.REFUNDED
    assert harness.courses.enrollments[(user.id, course.id)].status == EnrollmentStatusEnum.REFUNDED
    assert course.total_students == 0
    assert harness.emails.types() == [EmailTypeEnum.COURSE_ENROLLMENT, EmailTypeEnum.PAYMENT_REFUNDED]


@pytest.mark.asyncio
async def test_subscription_activation_and_cancellation() -> None:
    user = make_user()
    harness = build_webhook_harness(users=[user])

    activated = await harness.service.process(
        *sign(subscription_event("subscription.activated", notes={"userId": str(user.id), "planType": "premium"})),
    )
    duplicate = await harness.service.process(
        *sign(subscription_event("subscription.activated", notes={"userId": str(user.id)})),
    )
    cancelled = await harness.service.process(*sign(subscription_event("subscription.cancelled")))
    cancelled_again = await harness.service.process(*sign(subscription_event("subscription.cancelled")))

    subscription = harness.subscriptions.subscriptions["sub_1"]
    assert (activated, duplicate, cancelled, cancelled_again) == ("handled", "ignored", "handled", "ignored")
    assert subscription.plan_type == "premium"
    assert subscription.status == SubscriptionStatusEnum.CANCELLED
    assert subscription.canceled_at is not None
    assert subscription.current_period_start is not None


@pytest.mark.asyncio
async def test_subscription_without_user_is_skipped() -> None:
    harness = build_webhook_harness()

    outcome = await harness.service.process(*sign(subscription_event("subscription.activated")))

    assert outcome == "ignored"
    assert harness.subscriptions.subscriptions == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [AppointmentStatusEnum.COMPLETED, AppointmentStatusEnum.NO_SHOW])
async def test_refund_leaves_past_appointments_untouched(status: AppointmentStatusEnum) -> None:
    user = make_user()
    appointment = FakeAppointment(user_id=user.id, status=status)
    transaction = FakeTransaction(
        user_id=user.id,
        type=TransactionTypeEnum.APPOINTMENT_BOOKING,
        amount=Decimal("1500.00"),
        appointment_id=appointment.id,
        status=TransactionStatusEnum.COMPLETED,
        gateway_payment_id="pay_1",
    )
    harness = build_webhook_harness(transactions=[transaction], appointments=[appointment], users=[user])

    outcome = await harness.service.process(*sign(refund_event("refund.processed")))

    assert outcome == "ignored"
    assert transaction.status == TransactionStatusEnum.REFUNDED
    assert appointment.status == status
    assert appointment.cancel_reason is None
    assert harness.emails.sent == []
