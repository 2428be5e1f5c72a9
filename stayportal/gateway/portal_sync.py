"""Provisioning portal codes and mirroring them into Guesty's portal_code custom field."""

import asyncio
from typing import Any

from loguru import logger
from pydantic import BaseModel
from redis.asyncio import Redis

from stayportal.gateway.exceptions import ServiceUnavailableError
from stayportal.gateway.guesty import GuestyAPIError, GuestyClient
from stayportal.gateway.portal_codes import get_or_create_code, lookup_by_reservation


class PortalCodeSyncResult(BaseModel):
    reservation_id: str
    confirmation_code: str
    guest_name: str
    check_in: str
    check_out: str
    property: str
    status: str
    portal_code: str | None
    is_new: bool = False
    guesty_synced: bool | None = None  # None: not pushed
    error: str | None = None


class PortalCodeSyncReport(BaseModel):
    total: int
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    new_codes: int = 0
    results: list[PortalCodeSyncResult]


class ProvisionResult(BaseModel):
    reservation_id: str
    portal_code: str
    is_new: bool
    guesty_synced: bool | None = None
    guesty_error: str | None = None


async def push_portal_code(guesty: GuestyClient, reservation_id: str, portal_code: str) -> str | None:
    """Write the code to Guesty. Returns an error description, or None on success."""
    try:
        await guesty.set_portal_code(reservation_id, portal_code)
    except GuestyAPIError as e:
        logger.warning(f"Guesty sync of portal code {portal_code} for {reservation_id} failed: {e}")
        return f"{e.status_code}: {e.body[:200]}" if e.body else str(e)
    logger.info(f"Synced portal code {portal_code} to Guesty for reservation {reservation_id}")
    return None


async def provision_portal_code(
    redis: Redis | None,
    guesty: GuestyClient,
    reservation_id: str,
    *,
    resync: bool = True,
) -> ProvisionResult:
    """Make sure `reservation_id` has a code; push it to Guesty when new, or always with `resync`."""
    portal_code, is_new = await get_or_create_code(redis, reservation_id)
    if is_new:
        logger.info(f"Generated portal code {portal_code} for reservation {reservation_id}")

    result = ProvisionResult(reservation_id=reservation_id, portal_code=portal_code, is_new=is_new)
    if is_new or resync:
        error = await push_portal_code(guesty, reservation_id, portal_code)
        result.guesty_synced = error is None
        result.guesty_error = error
    return result


def _describe(raw: dict[str, Any]) -> dict[str, str]:
    listing = raw.get("listing") or {}
    guest = raw.get("guest") or {}
    return {
        "reservation_id": raw["_id"],
        "confirmation_code": (raw.get("confirmationCode") or raw.get("guestyConfirmationCode") or "").strip(),
        "guest_name": guest.get("fullName") or raw.get("guestName") or "Guest",
        "check_in": (raw.get("checkInDateLocalized") or raw.get("checkIn") or "").split("T")[0],
        "check_out": (raw.get("checkOutDateLocalized") or raw.get("checkOut") or "").split("T")[0],
        "property": listing.get("nickname") or listing.get("title") or raw.get("listingTitle") or "",
        "status": raw.get("status") or "",
    }


async def sync_portal_codes(
    redis: Redis | None,
    guesty: GuestyClient,
    *,
    create_missing: bool = True,
    push: bool = True,
    confirmed_only: bool = True,
    delay_seconds: float = 5.0,
) -> PortalCodeSyncReport:
    """Walk future reservations, provisioning and/or pushing portal codes.

    Reservations without a confirmation code are skipped. Guesty writes are
    spaced `delay_seconds` apart to stay under its rate limits.
    """
    reservations = await guesty.list_future_reservations(confirmed_only=confirmed_only)
    report = PortalCodeSyncReport(total=len(reservations), results=[])

    for i, raw in enumerate(reservations):
        info = _describe(raw)
        if not info["confirmation_code"]:
            logger.info(f"Skipping reservation {info['reservation_id']} (no confirmation code)")
            report.skipped += 1
            continue

        reservation_id = info["reservation_id"]
        if create_missing:
            try:
                portal_code, is_new = await get_or_create_code(redis, reservation_id)
            except ServiceUnavailableError as e:
                logger.error(f"Could not provision portal code for {reservation_id}: {e}")
                report.results.append(PortalCodeSyncResult(**info, portal_code=None, error=str(e)))
                report.failed += 1
                continue
        else:
            portal_code, is_new = await lookup_by_reservation(redis, reservation_id), False
        result = PortalCodeSyncResult(**info, portal_code=portal_code, is_new=is_new)
        report.new_codes += int(is_new)

        if push and portal_code:
            error = await push_portal_code(guesty, reservation_id, portal_code)
            result.guesty_synced = error is None
            result.error = error
            if error is None:
                report.synced += 1
            else:
                report.failed += 1
            if delay_seconds and i < len(reservations) - 1:
                await asyncio.sleep(delay_seconds)

        report.results.append(result)

    report.results.sort(key=lambda r: r.check_in)
    return report


def to_tsv(report: PortalCodeSyncReport) -> str:
    """Tab-separated export for pasting into a spreadsheet."""
    rows = ["Guest Name\tConfirmation Code\tPortal Code\tCheck-In\tCheck-Out\tProperty\tStatus"]
    rows.extend(
        f"{r.guest_name}\t{r.confirmation_code}\t{r.portal_code or ''}\t{r.check_in}\t{r.check_out}\t{r.property}\t{r.status}"
        for r in report.results
    )
    return "\n".join(rows)
