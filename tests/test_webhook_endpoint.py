from __future__ import annotations

from collections.abc import AsyncIterator
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from app.core.enums import TransactionStatusEnum, TransactionTypeEnum
from app.main import app
from app.modules.payments.webhooks import get_webhook_service
from tests.fakes import FakeCourse, FakeTransaction, WebhookHarness, build_webhook_harness, make_user, payment_event, sign

WEBHOOK_URL = "/api/v1/payments/webhooks/razorpay"


@pytest.fixture
def harness() -> WebhookHarness:
    user = make_user()
    course = FakeCourse(title="IELTS", price=Decimal("2499.00"))
    transaction = FakeTransaction(
        user_id=user.id,
        type=TransactionTypeEnum.COURSE_PURCHASE,
        amount=course.price,
        course_id=course.id,
    )
    return build_webhook_harness(transactions=[transaction], courses=[course], users=[user])


@pytest_asyncio.fixture
async def client(harness: WebhookHarness) -> AsyncIterator[httpx.AsyncClient]:
    app.dependency_overrides[get_webhook_service] = lambda: harness.service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()


def _transaction(harness: WebhookHarness) -> FakeTransaction:
    return next(iter(harness.payments.transactions.values()))


@pytest.mark.asyncio
async def test_signed_delivery_is_acknowledged_and_applied(
    client: httpx.AsyncClient,
    harness: WebhookHarness,
) -> None:
    transaction = _transaction(harness)
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))

    response = await client.post(WEBHOOK_URL, content=body, headers={"X-Razorpay-Signature": signature})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert transaction.status == TransactionStatusEnum.COMPLETED


@pytest.mark.asyncio
async def test_tampered_body_is_rejected_with_400(client: httpx.AsyncClient, harness: WebhookHarness) -> None:
    transaction = _transaction(harness)
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))

    response = await client.post(
        WEBHOOK_URL,
        content=body + b" ",
        headers={"X-Razorpay-Signature": signature},
    )

    assert response.status_code == 400
    assert response.json() == {"error": {"code": "invalid_signature", "message": "Invalid signature"}}
    assert transaction.status == TransactionStatusEnum.PENDING


@pytest.mark.asyncio
async def test_missing_signature_is_rejected_with_400(client: httpx.AsyncClient) -> None:
    body, _ = sign({"event": "payment.captured", "payload": {}})

    response = await client.post(WEBHOOK_URL, content=body)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No signature provided"


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged(client: httpx.AsyncClient) -> None:
    body, signature = sign({"event": "invoice.paid", "payload": {}})

    response = await client.post(WEBHOOK_URL, content=body, headers={"X-Razorpay-Signature": signature})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_handler_failure_still_answers_ok(
    client: httpx.AsyncClient,
    harness: WebhookHarness,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    transaction = _transaction(harness)

    async def _broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(harness.payments, "get_transaction_by_id", _broken)
    body, signature = sign(payment_event("payment.captured", notes={"transactionId": str(transaction.id)}))

    response = await client.post(WEBHOOK_URL, content=body, headers={"X-Razorpay-Signature": signature})

    assert response.status_code == 200
