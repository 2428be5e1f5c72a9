import json

import stripe
from fastapi import APIRouter, HTTPException, status
from loguru import logger
from pydantic import BaseModel

from stayportal.gateway.catalog import Upsell, get_upsell, list_upsells
from stayportal.gateway.demo import is_demo_reservation
from stayportal.gateway.deps import (
    CurrentSession,
    OptionalSession,
    SettingsDep,
    StripeClientDep,
    UpsellLedgerDep,
)
from stayportal.gateway.exceptions import ResourceNotFoundError, UpstreamError
from stayportal.gateway.upsell_requests import UpsellRequest

router = APIRouter(prefix="/api/upsells", tags=["Upsells"])

# Stripe caps metadata values at 500 characters; the cart travels in one of them.
MAX_CART_ITEMS = 10


class CartItem(BaseModel):
    upsell_id: str
    option_id: str | None = None


class CheckoutRequest(BaseModel):
    items: list[CartItem] = []


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class CheckoutSessionResponse(BaseModel):
    reservation_id: str
    status: str | None = None


class UpsellRequestsResponse(BaseModel):
    upsells: list[UpsellRequest]


@router.get("")
async def get_upsells(session: OptionalSession, category: str | None = None) -> list[Upsell]:
    """Catalog entries, narrowed to the guest's property when logged in."""
    return list_upsells(category, session.listing_id if session else None)


@router.post("/checkout")
async def create_checkout(
    body: CheckoutRequest,
    session: CurrentSession,
    settings: SettingsDep,
    stripe_client: StripeClientDep,
) -> CheckoutResponse:
    """Open a Stripe Checkout Session that only authorizes the card; capture happens on approval."""
    if not body.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No items provided")
    if len(body.items) > MAX_CART_ITEMS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Too many items")

    line_items = []
    cart = []
    for item in body.items:
        upsell = get_upsell(item.upsell_id)
        if upsell is None:
            logger.warning(f"Dropping unknown upsell {item.upsell_id!r} from checkout")
            continue
        name, price = upsell.resolve(item.option_id)
        line_items.append(
            {
                "price_data": {
                    "currency": upsell.currency.lower(),
                    "unit_amount": round(price * 100),
                    "product_data": {"name": name, "description": upsell.description},
                },
                "quantity": 1,
            }
        )
        cart.append({"u": upsell.id, "o": item.option_id})

    if not line_items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid items")

    metadata = {
        "reservation_id": session.reservation_id,
        "items": json.dumps(cart, separators=(",", ":")),
    }
    try:
        checkout = await stripe_client.v1.checkout.sessions.create_async(
            params={
                "mode": "payment",
                "line_items": line_items,
                "payment_intent_data": {"capture_method": "manual", "metadata": metadata},
                "success_url": f"{settings.app_url}/upsells/success?session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": f"{settings.app_url}/upsells",
                "metadata": metadata,
            }
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout creation failed for reservation {session.reservation_id}: {e}")
        raise UpstreamError("Failed to create checkout session")

    return CheckoutResponse(url=checkout.url, session_id=checkout.id)


@router.get("/session")
async def get_checkout_session(
    session_id: str,
    session: CurrentSession,
    stripe_client: StripeClientDep,
) -> CheckoutSessionResponse:
    """Resolve a checkout session back to its reservation, for the post-payment redirect."""
    try:
        checkout = await stripe_client.v1.checkout.sessions.retrieve_async(session_id)
    except stripe.InvalidRequestError:
        raise ResourceNotFoundError("CheckoutSession", session_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout lookup failed for {session_id}: {e}")
        raise UpstreamError("Failed to retrieve checkout session")

    reservation_id = getattr(checkout.metadata, "reservation_id", None)
    if reservation_id != session.reservation_id:
        raise ResourceNotFoundError("CheckoutSession", session_id)
    return CheckoutSessionResponse(reservation_id=reservation_id, status=checkout.status)


@router.get("/requests")
async def get_upsell_requests(session: CurrentSession, ledger: UpsellLedgerDep) -> UpsellRequestsResponse:
    """The guest's own upsell requests, newest first."""
    if session.is_demo or is_demo_reservation(session.reservation_id):
        return UpsellRequestsResponse(upsells=[])
    return UpsellRequestsResponse(upsells=await ledger.list_for_reservation(session.reservation_id))
