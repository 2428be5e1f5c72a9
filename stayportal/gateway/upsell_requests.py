"""Upsell request ledger.

Storage:
- `upsell_request:{id}`: JSON record, id = Stripe payment intent id
- `upsell_request:payment_intent:{pi}`: secondary index, pi -> id
- `reservation:{reservation_id}:upsells`: set of ids, guest-facing history
- `pending_upsells`: zset of ids scored by check-in (unix ms), scanned by the
  daily reminder sweep. Requests leave it when declined or expired; approved
  requests stay, they are what the reminders are about.

Lifecycle: pending -> approved | declined | expired. Terminal states are final.
"""

from datetime import UTC, date, datetime, time
from enum import StrEnum, auto

from loguru import logger
from pydantic import BaseModel, Field
from redis.asyncio import Redis

from stayportal.contracts.redis_keys import (
    PENDING_UPSELLS,
    RESERVATION_UPSELLS,
    UPSELL_BY_PAYMENT_INTENT,
    UPSELL_REQUEST,
)
from stayportal.gateway.exceptions import (
    InvalidStatusTransitionError,
    ResourceNotFoundError,
    ServiceUnavailableError,
)


class UpsellStatus(StrEnum):
    pending = auto()
    approved = auto()
    declined = auto()
    expired = auto()


TERMINAL_STATUSES = {UpsellStatus.approved, UpsellStatus.declined, UpsellStatus.expired}
UNSCHEDULED_STATUSES = {UpsellStatus.declined, UpsellStatus.expired}


class UpsellItem(BaseModel):
    upsell_id: str | None = None
    option_id: str | None = None
    name: str
    price: float
    currency: str


class UpsellRequest(BaseModel):
    id: str
    reservation_id: str
    items: list[UpsellItem]
    total_amount: float
    currency: str
    payment_intent_id: str
    customer_email: str | None = None
    guest_name: str | None = None
    property_name: str | None = None
    check_in_date: date | None = None
    status: UpsellStatus = UpsellStatus.pending
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    approved_at: datetime | None = None


def check_in_score(check_in: date) -> int:
    """Unix ms of midnight UTC on the check-in day."""
    return int(datetime.combine(check_in, time.min, tzinfo=UTC).timestamp() * 1000)


def _request_key(request_id: str) -> str:
    return UPSELL_REQUEST.format(request_id=request_id)


class UpsellLedger:
    def __init__(self, redis: Redis | None) -> None:
        self._redis = redis

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            raise ServiceUnavailableError("Upsell ledger unavailable: Redis not configured")
        return self._redis

    async def store(self, request: UpsellRequest) -> bool:
        """Write a new request and its indexes. Returns False if the id is already recorded."""
        key = _request_key(request.id)
        if await self.redis.exists(key):
            logger.info(f"Upsell request {request.id} already stored, skipping")
            return False

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(key, request.model_dump_json())
            pipe.set(UPSELL_BY_PAYMENT_INTENT.format(payment_intent_id=request.payment_intent_id), request.id)
            pipe.sadd(RESERVATION_UPSELLS.format(reservation_id=request.reservation_id), request.id)
            if request.check_in_date is not None:
                pipe.zadd(PENDING_UPSELLS, {request.id: check_in_score(request.check_in_date)})
            await pipe.execute()

        logger.info(f"Stored upsell request {request.id} for reservation {request.reservation_id}")
        return True

    async def get(self, request_id: str) -> UpsellRequest | None:
        raw = await self.redis.get(_request_key(request_id))
        return UpsellRequest.model_validate_json(raw) if raw else None

    async def _get_many(self, request_ids: list[str]) -> list[UpsellRequest]:
        if not request_ids:
            return []
        raws = await self.redis.mget([_request_key(i) for i in request_ids])
        return [UpsellRequest.model_validate_json(raw) for raw in raws if raw]

    async def update_status(
        self,
        request_id: str,
        status: UpsellStatus,
        approved_at: datetime | None = None,
    ) -> UpsellRequest:
        """Move a request along its lifecycle. Repeating the current status is a no-op."""
        request = await self.get(request_id)
        if request is None:
            raise ResourceNotFoundError("UpsellRequest", request_id)

        if request.status == status:
            logger.info(f"Upsell request {request_id} already {status}, nothing to do")
            return request
        if request.status in TERMINAL_STATUSES:
            raise InvalidStatusTransitionError(request_id, request.status, status)

        request.status = status
        if status == UpsellStatus.approved:
            request.approved_at = approved_at or datetime.now(UTC)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(_request_key(request_id), request.model_dump_json())
            if status in UNSCHEDULED_STATUSES:
                pipe.zrem(PENDING_UPSELLS, request_id)
            await pipe.execute()

        logger.info(f"Updated upsell request {request_id} status to {status}")
        return request

    async def find_by_payment_intent(self, payment_intent_id: str) -> UpsellRequest | None:
        request_id = await self.redis.get(UPSELL_BY_PAYMENT_INTENT.format(payment_intent_id=payment_intent_id))
        if request_id is None:
            return None
        return await self.get(request_id)

    async def list_for_reservation(self, reservation_id: str) -> list[UpsellRequest]:
        """Newest first."""
        request_ids = await self.redis.smembers(RESERVATION_UPSELLS.format(reservation_id=reservation_id))
        requests = await self._get_many(sorted(request_ids))
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    async def list_pending_in_range(self, start: datetime, end: datetime) -> list[UpsellRequest]:
        """Approved requests whose check-in falls within [start, end] -- the ones still worth a reminder."""
        start_ms = int(start.timestamp() * 1000)
        end_ms = int(end.timestamp() * 1000)
        request_ids = await self.redis.zrangebyscore(PENDING_UPSELLS, start_ms, end_ms)
        requests = await self._get_many(list(request_ids))
        return [r for r in requests if r.status == UpsellStatus.approved]
