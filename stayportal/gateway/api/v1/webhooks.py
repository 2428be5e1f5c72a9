import json
import secrets
from datetime import date

import stripe
from fastapi import APIRouter, HTTPException, Request, status
from loguru import logger

from stayportal.gateway.catalog import get_upsell
from stayportal.gateway.demo import is_demo_reservation
from stayportal.gateway.deps import GuestyClientDep, NotifierDep, RedisClient, SettingsDep, UpsellLedgerDep
from stayportal.gateway.exceptions import ServiceUnavailableError
from stayportal.gateway.guesty import GuestyAPIError, GuestyClient
from stayportal.gateway.notifications import Notifier
from stayportal.gateway.portal_sync import provision_portal_code
from stayportal.gateway.upsell_requests import UpsellItem, UpsellLedger, UpsellRequest, UpsellStatus

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    settings: SettingsDep,
    ledger: UpsellLedgerDep,
    guesty: GuestyClientDep,
    notifier: NotifierDep,
) -> dict:
    """Handle Stripe payment events.

    Once the signature checks out the event is always acknowledged, even if
    recording it fails, so Stripe does not keep redelivering it.
    """
    if not settings.stripe_webhook_secret:
        raise ServiceUnavailableError("Webhook not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No signature")

    try:
        stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    # Handlers work on the verified payload as plain dicts
    event = json.loads(payload)
    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info(f"Stripe webhook {event_type} ({event['id']})")

    try:
        match event_type:
            case "checkout.session.completed":
                await _record_checkout(obj, ledger, guesty, notifier)
            case "charge.captured":
                await _approve_charge(obj, ledger, notifier)
            case "payment_intent.canceled":
                await _cancel_authorization(obj, ledger)
            case _:
                return {"received": True, "status": "ignored"}
    except Exception as e:
        logger.opt(exception=e).error(f"Failed to process Stripe event {event_type} ({event['id']})")

    return {"received": True}


def _id_of(ref: str | dict | None) -> str | None:
    """Stripe sends expandable fields either as an id or as the expanded object."""
    if isinstance(ref, str) or ref is None:
        return ref
    return ref.get("id")


def _cart_items(raw_items: str) -> list[UpsellItem]:
    items = []
    for entry in json.loads(raw_items):
        upsell = get_upsell(entry.get("u", ""))
        if upsell is None:
            continue
        name, price = upsell.resolve(entry.get("o"))
        items.append(
            UpsellItem(upsell_id=upsell.id, option_id=entry.get("o"), name=name, price=price, currency=upsell.currency)
        )
    return items


async def _record_checkout(session: dict, ledger: UpsellLedger, guesty: GuestyClient, notifier: Notifier) -> None:
    metadata = session.get("metadata") or {}
    if not metadata.get("items"):
        logger.info(f"Checkout session {session.get('id')} carries no upsell items, ignoring")
        return

    payment_intent_id = _id_of(session.get("payment_intent"))
    if not payment_intent_id:
        logger.warning(f"Checkout session {session.get('id')} has no payment intent, ignoring")
        return
    if await ledger.find_by_payment_intent(payment_intent_id) is not None:
        logger.info(f"Payment intent {payment_intent_id} already recorded, skipping")
        return

    reservation_id = metadata.get("reservation_id") or "unknown"
    items = _cart_items(metadata["items"])
    customer = session.get("customer_details") or {}
    request = UpsellRequest(
        id=payment_intent_id,
        reservation_id=reservation_id,
        items=items,
        total_amount=(session.get("amount_total") or 0) / 100,
        currency=(session.get("currency") or "usd").upper(),
        payment_intent_id=payment_intent_id,
        customer_email=customer.get("email") or session.get("customer_email"),
    )

    if reservation_id != "unknown" and not is_demo_reservation(reservation_id):
        try:
            reservation = await guesty.get_reservation(reservation_id)
        except GuestyAPIError as e:
            logger.warning(f"Could not enrich upsell {request.id} from Guesty: {e}")
            reservation = None
        if reservation is not None:
            request.guest_name = reservation.guest_name
            request.check_in_date = date.fromisoformat(reservation.check_in[:10]) if reservation.check_in else None
            request.customer_email = request.customer_email or reservation.guest_email or None
            if reservation.listing_id:
                try:
                    listing = await guesty.get_listing(reservation.listing_id)
                except GuestyAPIError as e:
                    logger.warning(f"Could not fetch listing {reservation.listing_id}: {e}")
                    listing = None
                request.property_name = listing.nickname if listing else None

    await ledger.store(request)
    await notifier.notify_upsell_purchase(request)
    if request.customer_email and request.guest_name and request.property_name and request.check_in_date:
        await notifier.send_guest_confirmation(request)


async def _approve_charge(charge: dict, ledger: UpsellLedger, notifier: Notifier) -> None:
    payment_intent_id = _id_of(charge.get("payment_intent"))
    if not payment_intent_id:
        return
    request = await ledger.find_by_payment_intent(payment_intent_id)
    if request is None:
        logger.info(f"No upsell request for captured payment intent {payment_intent_id}")
        return

    was_approved = request.status == UpsellStatus.approved
    request = await ledger.update_status(request.id, UpsellStatus.approved)
    if not was_approved:
        await notifier.send_guest_charge_approved(request)


async def _cancel_authorization(payment_intent: dict, ledger: UpsellLedger) -> None:
    request = await ledger.find_by_payment_intent(payment_intent["id"])
    if request is None:
        logger.info(f"No upsell request for canceled payment intent {payment_intent['id']}")
        return

    # Stripe voids uncaptured authorizations on its own after seven days
    if payment_intent.get("cancellation_reason") == "automatic":
        await ledger.update_status(request.id, UpsellStatus.expired)
    else:
        await ledger.update_status(request.id, UpsellStatus.declined)


@router.post("/guesty")
async def guesty_webhook(
    request: Request,
    settings: SettingsDep,
    redis: RedisClient,
    guesty: GuestyClientDep,
) -> dict:
    """Provision a portal code when Guesty reports a new or changed reservation."""
    if settings.guesty_webhook_secret:
        provided = request.headers.get("x-webhook-secret") or ""
        if not secrets.compare_digest(provided.encode(), settings.guesty_webhook_secret.encode()):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    event_type = str(payload.get("event") or payload.get("type") or "")
    if event_type and "reservation" not in event_type and "created" not in event_type:
        logger.info(f"Ignoring Guesty event {event_type}")
        return {"message": "Event ignored", "event": event_type}

    reservation = payload.get("reservation") or (payload.get("data") or {}).get("reservation") or payload
    reservation_id = reservation.get("_id") or reservation.get("id") or reservation.get("reservationId")
    if not reservation_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No reservation ID")

    try:
        result = await provision_portal_code(
            redis, guesty, reservation_id, resync=settings.portal_code_webhook_resync
        )
    except ServiceUnavailableError as e:
        logger.error(f"Could not provision portal code for {reservation_id}: {e}")
        return {"message": "Portal code not provisioned", "reservation_id": reservation_id, "error": str(e)}

    return {"message": "Portal code provisioned", **result.model_dump()}


@router.get("/guesty")
async def guesty_webhook_ping() -> dict:
    return {"status": "ok", "message": "Guesty webhook endpoint"}
