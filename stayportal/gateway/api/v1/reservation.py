from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel

from stayportal.gateway.demo import demo_payments, demo_reservation, is_demo_reservation
from stayportal.gateway.deps import CurrentSession, GuestyClientDep, RedisClient
from stayportal.gateway.exceptions import ResourceNotFoundError, UpstreamError
from stayportal.gateway.guesty import GuestyAPIError, Payment, Reservation
from stayportal.gateway.portal_codes import lookup_by_reservation

router = APIRouter(prefix="/api/reservation", tags=["Reservation"])


class ReservationResponse(BaseModel):
    reservation: Reservation
    payments: list[Payment]
    portal_code: str | None = None


@router.get("")
async def get_reservation(
    session: CurrentSession,
    guesty: GuestyClientDep,
    redis: RedisClient,
) -> ReservationResponse:
    """Stay, property and payment details for the logged-in guest."""
    if session.is_demo or is_demo_reservation(session.reservation_id):
        return ReservationResponse(reservation=demo_reservation(), payments=demo_payments())

    reservation_id = session.reservation_id
    try:
        reservation = await guesty.get_reservation(reservation_id)
        if reservation is None:
            raise ResourceNotFoundError("Reservation", reservation_id, message="Reservation not found")
        if reservation.listing_id:
            reservation.listing = await guesty.get_listing(reservation.listing_id)
        payments = await guesty.get_payments(reservation_id)
    except GuestyAPIError as e:
        logger.error(f"Failed to fetch reservation {reservation_id}: Guesty returned {e.status_code}")
        raise UpstreamError("Failed to fetch reservation details")

    return ReservationResponse(
        reservation=reservation,
        payments=payments,
        portal_code=await lookup_by_reservation(redis, reservation_id),
    )
