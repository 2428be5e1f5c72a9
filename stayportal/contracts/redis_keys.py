from typing import Final

# portal codes never expire
PORTAL_CODE: Final[str] = "portal_code:{code}"  # code -> reservation id
RESERVATION_PORTAL_CODE: Final[str] = "reservation:{reservation_id}:portal_code"  # reservation id -> code

SESSION: Final[str] = "session:{session_id}"  # JSON SessionData, 24h TTL
RATE_LIMIT: Final[str] = "ratelimit:{prefix}:{identifier}"  # zset of request timestamps (ms)

UPSELL_REQUEST: Final[str] = "upsell_request:{request_id}"  # JSON UpsellRequest
UPSELL_BY_PAYMENT_INTENT: Final[str] = "upsell_request:payment_intent:{payment_intent_id}"  # -> request id
RESERVATION_UPSELLS: Final[str] = "reservation:{reservation_id}:upsells"  # set of request ids
PENDING_UPSELLS: Final[str] = "pending_upsells"  # zset scored by check-in timestamp (ms)

GUESTY_ACCESS_TOKEN: Final[str] = "guesty:access_token"  # JSON {token, expires_at}
UPSELL_REMINDERS_LOCK: Final[str] = "lock:upsell_reminders"  # redis NX lock
