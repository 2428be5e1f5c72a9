"""Tests for operator and guest notifications."""

import json
from datetime import date

import httpx
import pytest

from stayportal.gateway.config import Settings
from stayportal.gateway.notifications import RESEND_API_URL, Notifier
from stayportal.gateway.upsell_requests import UpsellItem, UpsellRequest

REQUEST = UpsellRequest(
    id="pi_1",
    reservation_id="res-1",
    items=[UpsellItem(name="Late Check-Out - 2 hours late", price=20, currency="USD")],
    total_amount=20,
    currency="USD",
    payment_intent_id="pi_1",
    customer_email="ada@example.com",
    guest_name="Ada Guest",
    property_name="Desert Oasis",
    check_in_date=date(2025, 7, 4),
)


class Recorder:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={})


def _notifier(recorder: Recorder, **overrides) -> Notifier:
    config = {
        "resend_api_key": "re_test",
        "notification_email": "ops@example.com",
        "slack_webhook_url": "https://hooks.slack.test/T/B/X",
    }
    settings = Settings(**(config | overrides))
    return Notifier(settings, httpx.AsyncClient(transport=httpx.MockTransport(recorder)))


@pytest.mark.asyncio
async def test_purchase_notifies_slack_and_operator_email():
    recorder = Recorder()

    await _notifier(recorder).notify_upsell_purchase(REQUEST)

    urls = sorted(str(r.url) for r in recorder.requests)
    assert urls == [RESEND_API_URL, "https://hooks.slack.test/T/B/X"]
    email = json.loads(next(r for r in recorder.requests if str(r.url) == RESEND_API_URL).content)
    assert email["to"] == ["ops@example.com"]
    assert "Late Check-Out" in email["text"]


@pytest.mark.asyncio
async def test_unconfigured_targets_are_skipped():
    recorder = Recorder()
    notifier = _notifier(recorder, resend_api_key=None, slack_webhook_url=None)

    assert not await notifier.send_email("ops@example.com", "subject", "text")
    assert not await notifier.send_slack("text")
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_delivery_failures_are_reported_not_raised():
    notifier = _notifier(Recorder(status_code=500))

    assert not await notifier.send_slack("text")
    assert not await notifier.send_email("ops@example.com", "subject", "text")


@pytest.mark.asyncio
async def test_guest_confirmation_goes_to_guest():
    recorder = Recorder()

    await _notifier(recorder).send_guest_confirmation(REQUEST)

    body = json.loads(recorder.requests[0].content)
    assert body["to"] == ["ada@example.com"]
    assert "Desert Oasis" in body["text"]


@pytest.mark.asyncio
async def test_reminder_uses_slack():
    recorder = Recorder()

    assert await _notifier(recorder).send_upsell_reminder(REQUEST)
    assert str(recorder.requests[0].url) == "https://hooks.slack.test/T/B/X"
