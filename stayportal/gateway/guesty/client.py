import json
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger

from stayportal.gateway.config import Settings
from stayportal.gateway.guesty.errors import GuestyAPIError
from stayportal.gateway.guesty.models import CustomField, Payment, Property, Reservation
from stayportal.gateway.guesty.token import AccessTokenProvider


class GuestyClient:
    """Thin async client for the Guesty Open API.

    Every call is a single attempt; non-2xx responses raise `GuestyAPIError`
    (point lookups map 404 to None).
    """

    def __init__(self, settings: Settings, tokens: AccessTokenProvider, http: httpx.AsyncClient) -> None:
        self.settings = settings
        self.tokens = tokens
        self.http = http

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        token = await self.tokens.get_access_token()
        url = f"{self.settings.guesty_api_url}{path}"
        logger.debug(f"Guesty API request: {method} {path}")
        try:
            response = await self.http.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error(f"Guesty API unreachable: {method} {path}: {e!r}")
            raise GuestyAPIError(0, str(e), message="Guesty API unreachable") from e
        if response.is_error:
            logger.error(f"Guesty API error: {method} {path} -> {response.status_code} {response.text[:500]}")
            raise GuestyAPIError(response.status_code, response.text)
        if not response.content:
            return None
        return response.json()

    async def _get_or_none(self, path: str) -> Any:
        try:
            return await self._request("GET", path)
        except GuestyAPIError as e:
            if e.status_code == 404:
                return None
            raise

    async def get_reservation_by_confirmation_code(self, confirmation_code: str) -> Reservation | None:
        filters = json.dumps([{"operator": "$in", "field": "confirmationCode", "value": [confirmation_code]}])
        data = await self._request("GET", "/reservations", params={"filters": filters})
        results = (data or {}).get("results") or []
        logger.info(f"Guesty reservation search: {len(results)} found")
        if not results:
            return None
        return Reservation.from_guesty(results[0])

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        raw = await self._get_or_none(f"/reservations/{reservation_id}")
        return Reservation.from_guesty(raw) if raw else None

    async def get_raw_reservation(self, reservation_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/reservations/{reservation_id}")

    async def get_listing(self, listing_id: str) -> Property | None:
        raw = await self._get_or_none(f"/listings/{listing_id}")
        return Property.from_guesty(raw) if raw else None

    async def get_payments(self, reservation_id: str) -> list[Payment]:
        data = await self._request("GET", f"/reservations/{reservation_id}/payments")
        if isinstance(data, dict):
            data = data.get("results") or []
        return [Payment.from_guesty(p) for p in data or []]

    async def list_future_reservations(self, *, confirmed_only: bool = True, limit: int = 100) -> list[dict[str, Any]]:
        """Raw reservations checking in today or later."""
        today = datetime.now(UTC).date().isoformat()
        filters: list[dict[str, Any]] = [{"operator": "$gte", "field": "checkInDateLocalized", "value": today}]
        if confirmed_only:
            filters.append({"operator": "$eq", "field": "status", "value": "confirmed"})
        data = await self._request("GET", "/reservations", params={"filters": json.dumps(filters), "limit": limit})
        return (data or {}).get("results") or []

    async def get_custom_fields(self) -> list[CustomField]:
        data = await self._request("GET", "/custom-fields")
        if isinstance(data, dict):
            data = data.get("results") or []
        return [
            CustomField(id=f.get("_id", ""), field_id=f.get("fieldId", ""), title=f.get("title", "")) for f in data or []
        ]

    async def set_custom_field(self, reservation_id: str, field_id: str, value: str) -> None:
        await self._request(
            "PUT",
            f"/reservations/{reservation_id}/custom-fields",
            json_body={"customFields": [{"fieldId": field_id, "value": value}]},
        )

    async def set_portal_code(self, reservation_id: str, portal_code: str) -> None:
        field_id = self.settings.guesty_portal_code_field_id
        if not field_id:
            raise GuestyAPIError(0, "", message="GUESTY_PORTAL_CODE_FIELD_ID is not configured")
        await self.set_custom_field(reservation_id, field_id, portal_code)
