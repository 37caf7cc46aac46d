"""HTTP surface for purchases, webhooks and course access."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from coursepay.api.errors import STATUS_BY_KIND, to_http_exception
from coursepay.core.security import create_access_token
from coursepay.services.errors import SettlementError, SettlementErrorKind

pytestmark = pytest.mark.asyncio

PREFIX = "/api/v1"
PAID_COURSE = "async-web-services"
PRICE_MINOR = 50_000_000


async def _create_intent(client, headers, **overrides):
    body = {"course_id": PAID_COURSE, "amount": "500000", "currency": "usd"}
    body.update(overrides)
    return await client.post(f"{PREFIX}/payments/create-intent", json=body, headers=headers)


async def _post_webhook(client, payload: bytes, signature: str | None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return await client.post(f"{PREFIX}/payments/webhook", content=payload, headers=headers)


async def test_purchase_flow_grants_access(app_context, signer, event_factory) -> None:
    client = app_context["client"]
    headers = app_context["headers"]

    access = await client.get(f"{PREFIX}/courses/{PAID_COURSE}/access", headers=headers)
    assert access.status_code == 200
    assert access.json() == {"granted": False, "reason": "none"}

    response = await _create_intent(client, headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["payment_required"] is True
    assert body["status"] == "created"
    assert body["client_secret"]
    intent_id = body["gateway_intent_id"]

    payload = event_factory("payment_intent.succeeded", intent_id, amount=PRICE_MINOR)
    webhook = await _post_webhook(client, payload, signer(payload))
    assert webhook.status_code == 200, webhook.text
    assert webhook.json() == {"received": True, "status": "applied"}

    replay = await _post_webhook(client, payload, signer(payload))
    assert replay.status_code == 200
    assert replay.json()["status"] == "already_settled"

    access = await client.get(f"{PREFIX}/courses/{PAID_COURSE}/access", headers=headers)
    assert access.json() == {"granted": True, "reason": "purchased"}

    status_response = await client.get(
        f"{PREFIX}/payments/intent-status/{intent_id}", headers=headers
    )
    assert status_response.json() == {"gateway_intent_id": intent_id, "status": "succeeded"}

    mine = await client.get(f"{PREFIX}/courses/mine", headers=headers)
    assert mine.status_code == 200
    courses = mine.json()
    assert [course["course_id"] for course in courses] == [PAID_COURSE]
    assert Decimal(courses[0]["amount_paid"]) == Decimal("500000")

    again = await _create_intent(client, headers)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_owned"


async def test_free_course_needs_no_payment(app_context) -> None:
    client = app_context["client"]
    headers = app_context["headers"]

    access = await client.get(f"{PREFIX}/courses/intro-to-python/access", headers=headers)
    assert access.json() == {"granted": True, "reason": "free"}

    response = await _create_intent(
        client, headers, course_id="intro-to-python", amount="0"
    )
    assert response.status_code == 200
    body = response.json()
    assert body["payment_required"] is False
    assert body["gateway_intent_id"] is None
    assert app_context["gateway"].calls == []


async def test_tampered_amount_returns_bad_request(app_context) -> None:
    response = await _create_intent(
        app_context["client"], app_context["headers"], amount="1.00"
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "amount_mismatch"


async def test_unknown_course_returns_not_found(app_context) -> None:
    client = app_context["client"]
    headers = app_context["headers"]

    response = await _create_intent(client, headers, course_id="retired-course")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"

    access = await client.get(f"{PREFIX}/courses/no-such-course/access", headers=headers)
    assert access.status_code == 404


async def test_gateway_outage_returns_retryable_error(app_context) -> None:
    app_context["gateway"].unavailable = True

    response = await _create_intent(app_context["client"], app_context["headers"])

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"
    assert response.json()["detail"]["code"] == "gateway_unavailable"


async def test_webhook_rejects_bad_signatures(app_context, signer, event_factory) -> None:
    client = app_context["client"]
    payload = event_factory("payment_intent.succeeded", "pi_anything", amount=PRICE_MINOR)

    unsigned = await _post_webhook(client, payload, None)
    assert unsigned.status_code == 400
    assert unsigned.json()["detail"]["code"] == "invalid_signature"

    forged = await _post_webhook(client, payload, signer(payload, secret="whsec_forged"))
    assert forged.status_code == 400
    assert forged.json()["detail"]["message"] == "Invalid signature"


async def test_webhook_acknowledges_unmatched_and_ignored_events(
    app_context, signer, event_factory
) -> None:
    client = app_context["client"]

    unmatched = event_factory("payment_intent.succeeded", "pi_untracked", amount=1)
    response = await _post_webhook(client, unmatched, signer(unmatched))
    assert response.status_code == 200
    assert response.json()["status"] == "unmatched"

    ignored = event_factory("customer.created", "cus_123")
    response = await _post_webhook(client, ignored, signer(ignored))
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


async def test_status_refresh_reconciles_with_gateway(app_context) -> None:
    client = app_context["client"]
    headers = app_context["headers"]
    gateway = app_context["gateway"]

    created = await _create_intent(client, headers)
    intent_id = created.json()["gateway_intent_id"]

    stale = await client.get(f"{PREFIX}/payments/intent-status/{intent_id}", headers=headers)
    assert stale.json()["status"] == "created"
    assert gateway.count("retrieve") == 0

    gateway.intents[intent_id].status = "succeeded"
    refreshed = await client.get(
        f"{PREFIX}/payments/intent-status/{intent_id}",
        params={"refresh": "true"},
        headers=headers,
    )
    assert refreshed.status_code == 200
    assert refreshed.json()["status"] == "succeeded"

    access = await client.get(f"{PREFIX}/courses/{PAID_COURSE}/access", headers=headers)
    assert access.json()["granted"] is True


async def test_intent_status_is_scoped_to_owner(app_context) -> None:
    client = app_context["client"]
    created = await _create_intent(client, app_context["headers"])
    intent_id = created.json()["gateway_intent_id"]

    stranger = {"Authorization": f"Bearer {create_access_token(str(uuid.uuid4()))}"}
    response = await client.get(
        f"{PREFIX}/payments/intent-status/{intent_id}", headers=stranger
    )
    assert response.status_code == 404


async def test_cancel_endpoint(app_context) -> None:
    client = app_context["client"]
    headers = app_context["headers"]
    created = await _create_intent(client, headers)
    intent_id = created.json()["gateway_intent_id"]

    canceled = await client.post(f"{PREFIX}/payments/cancel/{intent_id}", headers=headers)
    assert canceled.status_code == 200
    assert canceled.json()["status"] == "canceled"

    again = await client.post(f"{PREFIX}/payments/cancel/{intent_id}", headers=headers)
    assert again.status_code == 200
    assert app_context["gateway"].count("cancel") == 1


async def test_endpoints_require_authentication(app_context) -> None:
    client = app_context["client"]

    response = await _create_intent(client, {})
    assert response.status_code == 401

    response = await client.get(
        f"{PREFIX}/courses/mine", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


async def test_every_error_kind_has_an_http_status() -> None:
    assert set(STATUS_BY_KIND) == set(SettlementErrorKind)
    exc = to_http_exception(
        SettlementError(SettlementErrorKind.INVALID_TRANSITION, "Payment intent is already failed")
    )
    assert exc.status_code == 409
    assert exc.detail == {
        "code": "invalid_transition",
        "message": "Payment intent is already failed",
    }
