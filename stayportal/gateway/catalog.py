from enum import StrEnum, auto

from pydantic import BaseModel, Field

from stayportal.gateway.demo import DEMO_PROPERTY_ID


class UpsellCategory(StrEnum):
    pool_heating = auto()
    early_checkin = auto()
    late_checkout = auto()
    extras = auto()
    service = auto()
    event = auto()


class UpsellOption(BaseModel):
    id: str
    label: str
    price: float


class Upsell(BaseModel):
    id: str
    name: str
    description: str
    price: float  # base price, or the only price without options
    currency: str = "USD"
    category: UpsellCategory
    options: list[UpsellOption] | None = Field(default=None)  # if present, one must be selected
    property_ids: list[str] | None = Field(default=None)  # None: offered at every property

    def resolve(self, option_id: str | None) -> tuple[str, float]:
        """Display name and price for a cart line, falling back to the base price for unknown options."""
        if option_id and self.options:
            for option in self.options:
                if option.id == option_id:
                    return f"{self.name} - {option.label}", option.price
        return self.name, self.price


# Guesty listing ids of the properties with a pool
POOL_PROPERTY_IDS = [
    "6785495562c49b00274e069e",
    "678549253b25590029d63a71",
    DEMO_PROPERTY_ID,
]

CATALOG: list[Upsell] = [
    Upsell(
        id="pool-heating",
        name="Pool Heating",
        description="Select your preferred temperature. Please request at least 3 days in advance.",
        price=100,
        category=UpsellCategory.pool_heating,
        property_ids=POOL_PROPERTY_IDS,
        options=[
            UpsellOption(id="pool-heat-80", label="80°F - Comfortable", price=100),
            UpsellOption(id="pool-heat-83", label="83°F - Toasty", price=125),
            UpsellOption(id="pool-heat-85", label="85°F - Luxurious", price=150),
        ],
    ),
    Upsell(
        id="early-checkin",
        name="Early Check-In",
        description="Request to check in early. Not guaranteed; the card is only charged if approved.",
        price=20,
        category=UpsellCategory.early_checkin,
        options=[
            UpsellOption(id="early-checkin-2hr", label="2 hours early", price=20),
            UpsellOption(id="early-checkin-4hr", label="4 hours early", price=40),
            UpsellOption(id="early-checkin-6hr", label="6 hours early", price=60),
        ],
    ),
    Upsell(
        id="late-checkout",
        name="Late Check-Out",
        description="Request to check out late. Not guaranteed; the card is only charged if approved.",
        price=20,
        category=UpsellCategory.late_checkout,
        options=[
            UpsellOption(id="late-checkout-2hr", label="2 hours late", price=20),
            UpsellOption(id="late-checkout-4hr", label="4 hours late", price=40),
            UpsellOption(id="late-checkout-6hr", label="6 hours late", price=60),
        ],
    ),
    Upsell(
        id="chex-mix",
        name="Extra Signature Chex Mix",
        description="A bag of our signature mix for the trip home, dropped off before your stay ends.",
        price=10,
        category=UpsellCategory.extras,
    ),
    Upsell(
        id="grocery-delivery",
        name="Grocery Delivery Service",
        description="Send us your list 48 hours before arrival and we stock the fridge. Groceries billed separately.",
        price=100,
        category=UpsellCategory.service,
    ),
    Upsell(
        id="mid-stay-clean",
        name="Mid-Stay Cleaning",
        description="A refresh of your space during your stay, charged only if we can schedule it.",
        price=75,
        category=UpsellCategory.service,
    ),
    Upsell(
        id="event",
        name="Event Package",
        description="Pool party, birthday or family reunion: pick the package that fits your gathering.",
        price=500,
        category=UpsellCategory.event,
        options=[
            UpsellOption(id="event-small", label="Small (10-19 guests)", price=500),
            UpsellOption(id="event-medium", label="Medium (20-29 guests)", price=1000),
            UpsellOption(id="event-large", label="Large (30-40 guests)", price=1500),
        ],
    ),
]

_BY_ID = {u.id: u for u in CATALOG}


def get_upsell(upsell_id: str) -> Upsell | None:
    return _BY_ID.get(upsell_id)


def list_upsells(category: str | None = None, property_id: str | None = None) -> list[Upsell]:
    upsells = CATALOG
    if property_id:
        upsells = [u for u in upsells if not u.property_ids or property_id in u.property_ids]
    if category and category != "all":
        upsells = [u for u in upsells if u.category == category]
    return upsells
