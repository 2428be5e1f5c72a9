"""Operator endpoints: bulk portal-code provisioning and upstream diagnostics."""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from stayportal.gateway.deps import GuestyClientDep, RedisClient, SettingsDep, require_admin
from stayportal.gateway.exceptions import ResourceNotFoundError
from stayportal.gateway.guesty import GuestyAPIError
from stayportal.gateway.portal_codes import lookup_by_code, lookup_by_reservation, normalize_code
from stayportal.gateway.portal_sync import (
    PortalCodeSyncResult,
    ProvisionResult,
    provision_portal_code,
    sync_portal_codes,
    to_tsv,
)

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


class GenerateCodesResponse(BaseModel):
    message: str
    count: int
    new_codes: int
    results: list[PortalCodeSyncResult]
    tsv: str


class SyncResponse(BaseModel):
    message: str
    total: int
    synced: int
    failed: int
    skipped: int
    new_codes: int
    results: list[PortalCodeSyncResult]


class SyncStatusResponse(BaseModel):
    total: int
    with_codes: int
    without_codes: int
    results: list[PortalCodeSyncResult]


class PortalCodeLookup(BaseModel):
    portal_code: str
    reservation_id: str


def _upstream_failure(e: GuestyAPIError) -> JSONResponse:
    """Operators get the raw upstream body, guests never do."""
    logger.error(f"Admin Guesty call failed: {e}")
    return JSONResponse(
        status_code=502,
        content={"detail": "Guesty request failed", "upstream_status": e.status_code, "upstream_body": e.body},
    )


@router.get("/generate-codes")
async def generate_codes(redis: RedisClient, guesty: GuestyClientDep) -> GenerateCodesResponse:
    """Create codes for every future reservation without pushing them; returns a spreadsheet-ready export."""
    try:
        report = await sync_portal_codes(redis, guesty, create_missing=True, push=False, confirmed_only=False)
    except GuestyAPIError as e:
        return _upstream_failure(e)

    return GenerateCodesResponse(
        message=f"Generated portal codes for {len(report.results)} reservations",
        count=len(report.results),
        new_codes=report.new_codes,
        results=report.results,
        tsv=to_tsv(report),
    )


@router.post("/sync-guesty")
async def sync_guesty(redis: RedisClient, guesty: GuestyClientDep, settings: SettingsDep) -> SyncResponse:
    """Provision and push codes for all confirmed future reservations, paced for Guesty's rate limits."""
    try:
        report = await sync_portal_codes(
            redis,
            guesty,
            create_missing=True,
            push=True,
            confirmed_only=True,
            delay_seconds=settings.portal_sync_delay_seconds,
        )
    except GuestyAPIError as e:
        return _upstream_failure(e)

    logger.info(f"Guesty sync complete: {report.synced} synced, {report.failed} failed, {report.skipped} skipped")
    return SyncResponse(
        message=f"Synced {report.synced} of {report.total} reservations",
        **report.model_dump(exclude={"results"}),
        results=report.results,
    )


@router.get("/sync-guesty")
async def sync_status(redis: RedisClient, guesty: GuestyClientDep) -> SyncStatusResponse:
    """Read-only view of which confirmed future reservations already have a code."""
    try:
        report = await sync_portal_codes(redis, guesty, create_missing=False, push=False, confirmed_only=True)
    except GuestyAPIError as e:
        return _upstream_failure(e)

    with_codes = sum(1 for r in report.results if r.portal_code)
    return SyncStatusResponse(
        total=len(report.results),
        with_codes=with_codes,
        without_codes=len(report.results) - with_codes,
        results=report.results,
    )


@router.get("/portal-codes/{code}")
async def get_portal_code(code: str, redis: RedisClient) -> PortalCodeLookup:
    reservation_id = await lookup_by_code(redis, code)
    if reservation_id is None:
        raise ResourceNotFoundError("PortalCode", code)
    return PortalCodeLookup(portal_code=normalize_code(code), reservation_id=reservation_id)


@router.get("/reservations/{reservation_id}/portal-code")
async def get_reservation_portal_code(reservation_id: str, redis: RedisClient) -> PortalCodeLookup:
    portal_code = await lookup_by_reservation(redis, reservation_id)
    if portal_code is None:
        raise ResourceNotFoundError("PortalCode", reservation_id, message=f"No portal code for {reservation_id!r}")
    return PortalCodeLookup(portal_code=portal_code, reservation_id=reservation_id)


@router.post("/reservations/{reservation_id}/portal-code")
async def provision_reservation_portal_code(
    reservation_id: str,
    redis: RedisClient,
    guesty: GuestyClientDep,
) -> ProvisionResult:
    """Ensure one reservation has a code and push it to Guesty."""
    return await provision_portal_code(redis, guesty, reservation_id, resync=True)


@router.get("/debug/custom-fields")
async def debug_custom_fields(guesty: GuestyClientDep, settings: SettingsDep) -> dict[str, Any]:
    """List the account's custom fields, to find the portal-code field id."""
    try:
        fields = await guesty.get_custom_fields()
    except GuestyAPIError as e:
        return _upstream_failure(e)

    return {
        "configured_field_id": settings.guesty_portal_code_field_id,
        "portal_code_fields": [f for f in fields if "portal" in f.title.lower()],
        "fields": fields,
    }


@router.get("/debug/reservation")
async def debug_reservation(id: str, guesty: GuestyClientDep) -> dict[str, Any]:
    """Raw reservation payload as Guesty returns it, custom fields included."""
    try:
        raw = await guesty.get_raw_reservation(id)
    except GuestyAPIError as e:
        return _upstream_failure(e)

    return {"reservation_id": id, "custom_fields": raw.get("customFields") or [], "raw": raw}
