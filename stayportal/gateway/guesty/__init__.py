from stayportal.gateway.guesty.client import GuestyClient
from stayportal.gateway.guesty.errors import GuestyAPIError, GuestyTokenQuotaError
from stayportal.gateway.guesty.models import CustomField, Money, Payment, Property, Reservation
from stayportal.gateway.guesty.token import AccessTokenProvider

__all__ = [
    "AccessTokenProvider",
    "CustomField",
    "GuestyAPIError",
    "GuestyClient",
    "GuestyTokenQuotaError",
    "Money",
    "Payment",
    "Property",
    "Reservation",
]
