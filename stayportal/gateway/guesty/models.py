from typing import Any

from pydantic import BaseModel, Field


class Address(BaseModel):
    full: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zipcode: str = ""
    country: str = ""


class Picture(BaseModel):
    thumbnail: str = ""
    regular: str = ""


class Property(BaseModel):
    id: str
    nickname: str
    title: str
    address: Address = Field(default_factory=Address)
    picture: Picture | None = Field(default=None)
    wifi_name: str | None = Field(default=None)
    wifi_password: str | None = Field(default=None)
    check_in_instructions: str | None = Field(default=None)
    house_rules: str | None = Field(default=None)

    @classmethod
    def from_guesty(cls, raw: dict[str, Any]) -> "Property":
        picture = raw.get("picture") or {}
        address = raw.get("address") or {}
        return cls(
            id=raw["_id"],
            nickname=raw.get("nickname") or raw.get("title") or "",
            title=raw.get("title") or "",
            address=Address(**{field: address.get(field) or "" for field in Address.model_fields}),
            picture=Picture(thumbnail=picture.get("thumbnail") or "", regular=picture.get("regular") or ""),
            wifi_name=raw.get("wifiNetwork") or "",
            wifi_password=raw.get("wifiPassword") or "",
            check_in_instructions=raw.get("checkInInstructions") or "",
            house_rules=raw.get("houseRules") or "",
        )


class Money(BaseModel):
    total_paid: float = 0
    balance_due: float = 0
    currency: str = "USD"


class Reservation(BaseModel):
    id: str
    confirmation_code: str
    guest_name: str
    guest_email: str = ""
    check_in: str
    check_out: str
    check_in_time: str = "15:00"
    check_out_time: str = "11:00"
    status: str = ""
    listing_id: str
    listing: Property | None = Field(default=None)
    money: Money | None = Field(default=None)

    @classmethod
    def from_guesty(cls, raw: dict[str, Any]) -> "Reservation":
        guest = raw.get("guest") or {}
        listing = raw.get("listing") or {}
        money = raw.get("money") or {}
        return cls(
            id=raw["_id"],
            confirmation_code=raw.get("confirmationCode") or raw.get("guestyConfirmationCode") or "",
            guest_name=guest.get("fullName") or "Guest",
            guest_email=guest.get("email") or "",
            check_in=raw.get("checkIn") or raw.get("checkInDateLocalized") or "",
            check_out=raw.get("checkOut") or raw.get("checkOutDateLocalized") or "",
            check_in_time=listing.get("defaultCheckInTime") or "15:00",
            check_out_time=listing.get("defaultCheckOutTime") or "11:00",
            status=raw.get("status") or "",
            listing_id=raw.get("listingId") or "",
            money=Money(
                total_paid=money.get("totalPaid") or 0,
                balance_due=money.get("balanceDue") or 0,
                currency=money.get("currency") or "USD",
            ),
        )


class Payment(BaseModel):
    id: str
    amount: float
    currency: str = "USD"
    status: str  # paid | pending | failed | scheduled, or Guesty's raw status
    date: str
    description: str = "Payment"
    scheduled_date: str | None = Field(default=None)

    @classmethod
    def from_guesty(cls, raw: dict[str, Any]) -> "Payment":
        status = raw.get("status") or ""
        return cls(
            id=raw["_id"],
            amount=raw.get("amount") or 0,
            currency=raw.get("currency") or "USD",
            status="paid" if status == "succeeded" else status,
            date=raw.get("createdAt") or "",
            description=raw.get("note") or "Payment",
        )


class CustomField(BaseModel):
    id: str
    field_id: str
    title: str = ""
