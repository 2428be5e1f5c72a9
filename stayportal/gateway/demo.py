"""Fixed demo stay, served without touching Guesty."""

from datetime import UTC, datetime, timedelta

from stayportal.gateway.guesty.models import Address, Money, Payment, Picture, Property, Reservation

DEMO_CODES = {"DEMO", "DEMO123"}
DEMO_RESERVATION_ID = "demo-reservation-001"
DEMO_PROPERTY_ID = "demo-property-001"
DEMO_ID_PREFIX = "demo-"


def is_demo_code(code: str) -> bool:
    return code.strip().upper() in DEMO_CODES


def is_demo_reservation(reservation_id: str) -> bool:
    return reservation_id.startswith(DEMO_ID_PREFIX)


def _day(offset: int) -> str:
    return (datetime.now(UTC) + timedelta(days=offset)).date().isoformat()


def demo_property() -> Property:
    return Property(
        id=DEMO_PROPERTY_ID,
        nickname="Desert Oasis Retreat",
        title="Stunning 4BR Desert Oasis with Pool & Mountain Views",
        address=Address(
            full="1234 Saguaro Canyon Drive, Tucson, AZ 85750",
            street="1234 Saguaro Canyon Drive",
            city="Tucson",
            state="AZ",
            zipcode="85750",
            country="US",
        ),
        picture=Picture(
            thumbnail="https://images.unsplash.com/photo-1564013799919-ab600027ffc6?w=400",
            regular="https://images.unsplash.com/photo-1564013799919-ab600027ffc6?w=1200",
        ),
        wifi_name="DesertOasis_Guest",
        wifi_password="Welcome2Tucson!",
        check_in_instructions="The lockbox code will be sent 24 hours before check-in.",
        house_rules="No smoking. No parties. Quiet hours 10pm-8am.",
    )


def demo_reservation() -> Reservation:
    return Reservation(
        id=DEMO_RESERVATION_ID,
        confirmation_code="DEMO123",
        guest_name="Jordan Smith",
        guest_email="jordan.smith@example.com",
        check_in=_day(2),
        check_out=_day(7),
        check_in_time="16:00",
        check_out_time="11:00",
        status="confirmed",
        listing_id=DEMO_PROPERTY_ID,
        listing=demo_property(),
        money=Money(total_paid=850, balance_due=425, currency="USD"),
    )


def demo_payments() -> list[Payment]:
    now = datetime.now(UTC)
    return [
        Payment(
            id="demo-payment-001",
            amount=425,
            status="paid",
            date=(now - timedelta(days=14)).isoformat(),
            description="Initial deposit",
        ),
        Payment(
            id="demo-payment-002",
            amount=425,
            status="paid",
            date=(now - timedelta(days=7)).isoformat(),
            description="Second payment",
        ),
        Payment(
            id="demo-payment-003",
            amount=425,
            status="scheduled",
            date=now.isoformat(),
            description="Final payment",
            scheduled_date=_day(1),
        ),
    ]
