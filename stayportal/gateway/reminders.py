"""Daily reminder sweep for approved upsells with an imminent check-in.

The sweep body runs under a short-lived NX lock so overlapping scheduler
invocations cannot send duplicate reminders.
"""

from datetime import UTC, date, datetime, time, timedelta

from loguru import logger
from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import LockError

from stayportal.contracts.redis_keys import UPSELL_REMINDERS_LOCK
from stayportal.gateway.exceptions import ServiceUnavailableError
from stayportal.gateway.notifications import Notifier
from stayportal.gateway.upsell_requests import UpsellLedger, UpsellRequest

REMINDER_LEAD_DAYS = 3
LOCK_TTL_SECONDS = 5 * 60


class ReminderSweepResult(BaseModel):
    skipped: bool = False
    checked_date: date
    total_found: int = 0
    sent_count: int = 0


def _needs_reminder(request: UpsellRequest) -> bool:
    """Only approvals made at least REMINDER_LEAD_DAYS before check-in; later ones were fresh news anyway."""
    if request.approved_at is None or request.check_in_date is None:
        return False
    check_in = datetime.combine(request.check_in_date, time.min, tzinfo=UTC)
    return (check_in - request.approved_at) // timedelta(days=1) >= REMINDER_LEAD_DAYS


async def run_upsell_reminders(
    redis: Redis | None,
    ledger: UpsellLedger,
    notifier: Notifier,
    *,
    today: date | None = None,
) -> ReminderSweepResult:
    if redis is None:
        raise ServiceUnavailableError("Reminder sweep unavailable: Redis not configured")

    today = today or datetime.now(UTC).date()
    target = today + timedelta(days=REMINDER_LEAD_DAYS)

    lock = redis.lock(UPSELL_REMINDERS_LOCK, timeout=LOCK_TTL_SECONDS, blocking=False)
    if not await lock.acquire():
        logger.warning("Upsell reminder sweep already running, skipping")
        return ReminderSweepResult(skipped=True, checked_date=target)

    try:
        start = datetime.combine(target, time.min, tzinfo=UTC)
        end = start + timedelta(days=1) - timedelta(milliseconds=1)
        logger.info(f"Checking for upsell reminders for check-ins on {target}")

        upsells = await ledger.list_pending_in_range(start, end)
        logger.info(f"Found {len(upsells)} upsells to remind about")

        sent = 0
        for upsell in upsells:
            if not _needs_reminder(upsell):
                logger.info(f"Skipping upsell {upsell.id} - approved less than {REMINDER_LEAD_DAYS} days before check-in")
                continue
            if await notifier.send_upsell_reminder(upsell):
                sent += 1
                logger.info(f"Sent reminder for upsell {upsell.id}")

        return ReminderSweepResult(checked_date=target, total_found=len(upsells), sent_count=sent)
    finally:
        try:
            await lock.release()
        except LockError:
            logger.warning("Upsell reminder lock expired or was taken over before release")
