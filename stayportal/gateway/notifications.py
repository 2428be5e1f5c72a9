"""Operator and guest notifications: email through Resend, chat through an incoming webhook.

Fire-and-forget: unconfigured targets are skipped, failures are logged and never raised.
"""

import asyncio

import httpx
from loguru import logger

from stayportal.gateway.config import Settings
from stayportal.gateway.upsell_requests import UpsellRequest

RESEND_API_URL = "https://api.resend.com/emails"


def _item_lines(request: UpsellRequest) -> str:
    return "\n".join(f"- {item.name}: ${item.price:.2f}" for item in request.items)


def _stay_line(request: UpsellRequest) -> str:
    return f"{request.guest_name or 'Guest'} at {request.property_name or 'Property'}, check-in {request.check_in_date or 'unknown'}"


class Notifier:
    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http = http

    async def send_email(self, to: str, subject: str, text: str) -> bool:
        if not self.settings.resend_api_key:
            logger.warning("RESEND_API_KEY not configured, skipping email notification")
            return False
        try:
            response = await self.http.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                json={"from": self.settings.notification_email_from, "to": [to], "subject": subject, "text": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {e}")
            return False
        return True

    async def send_slack(self, text: str) -> bool:
        if not self.settings.slack_webhook_url:
            logger.warning("SLACK_WEBHOOK_URL not configured, skipping Slack notification")
            return False
        try:
            response = await self.http.post(self.settings.slack_webhook_url, json={"text": text})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return False
        return True

    async def notify_upsell_purchase(self, request: UpsellRequest) -> None:
        """Email and chat the operators about a new authorization, concurrently."""
        text = (
            f"New upsell request for reservation {request.reservation_id}\n"
            f"{_stay_line(request)}\n"
            f"{_item_lines(request)}\n"
            f"Total: ${request.total_amount:.2f} {request.currency.upper()}\n"
            f"Payment intent: {request.payment_intent_id} (authorized, capture to approve)"
        )
        jobs = [self.send_slack(text)]
        if self.settings.notification_email:
            jobs.append(self.send_email(self.settings.notification_email, "New upsell request", text))
        else:
            logger.warning("NOTIFICATION_EMAIL not configured, skipping operator email")
        await asyncio.gather(*jobs)

    async def send_guest_confirmation(self, request: UpsellRequest) -> None:
        if not request.customer_email:
            return
        await self.send_email(
            request.customer_email,
            "We received your add-on request",
            f"Hi {request.guest_name or 'there'},\n\n"
            f"We received your request for your stay at {request.property_name or 'your property'} "
            f"(check-in {request.check_in_date}):\n{_item_lines(request)}\n\n"
            f"Your card has been authorized for ${request.total_amount:.2f} and is only charged once we confirm.",
        )

    async def send_guest_charge_approved(self, request: UpsellRequest) -> None:
        if not request.customer_email:
            return
        await self.send_email(
            request.customer_email,
            "Your add-on request is confirmed",
            f"Hi {request.guest_name or 'there'},\n\n"
            f"Good news: your request for {request.property_name or 'your stay'} is confirmed:\n"
            f"{_item_lines(request)}\n\nTotal charged: ${request.total_amount:.2f}",
        )

    async def send_upsell_reminder(self, request: UpsellRequest) -> bool:
        return await self.send_slack(
            f"Reminder: upsell for check-in in 3 days\n"
            f"{_stay_line(request)} (reservation {request.reservation_id})\n"
            f"{_item_lines(request)}\nTotal: ${request.total_amount:.2f}"
        )
