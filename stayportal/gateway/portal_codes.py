"""Portal codes: short guest-friendly login codes mirrored into Guesty.

Storage: two permanent string keys per code, `portal_code:{CODE}` -> reservation
id and `reservation:{id}:portal_code` -> CODE, written together in one
MULTI/EXEC. Uniqueness is read-before-write against the forward key;
24^6 codes is plenty at this volume.
"""

import secrets
import string
import time

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from stayportal.contracts.redis_keys import PORTAL_CODE, RESERVATION_PORTAL_CODE
from stayportal.gateway.exceptions import ServiceUnavailableError

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ"  # no I or O
CODE_LENGTH = 6
MAX_ATTEMPTS = 10

_BASE36 = string.digits + string.ascii_uppercase


def normalize_code(code: str) -> str:
    return code.strip().upper()


def generate_portal_code() -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(CODE_LENGTH))


def _timestamp_suffix() -> str:
    n = int(time.time() * 1000)
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))[-2:]


def is_portal_code_shaped(code: str) -> bool:
    """True for anything `generate_unique_code` could have produced."""
    code = normalize_code(code)
    if len(code) == CODE_LENGTH:
        return all(c in ALPHABET for c in code)
    if len(code) == CODE_LENGTH + 2:
        return all(c in ALPHABET for c in code[:CODE_LENGTH]) and all(c in _BASE36 for c in code[CODE_LENGTH:])
    return False


async def code_exists(redis: Redis | None, code: str) -> bool:
    if redis is None:
        return False
    return await redis.exists(PORTAL_CODE.format(code=normalize_code(code))) > 0


async def generate_unique_code(redis: Redis | None) -> str:
    """A code not yet taken. Raises ServiceUnavailableError if the store cannot be asked."""
    for _ in range(MAX_ATTEMPTS):
        code = generate_portal_code()
        try:
            taken = await code_exists(redis, code)
        except RedisError as e:
            logger.error(f"Error checking portal code uniqueness: {e}")
            raise ServiceUnavailableError("Portal code store unavailable") from e
        if not taken:
            return code
    # Last resort: a longer code instead of looping forever
    code = generate_portal_code() + _timestamp_suffix()
    logger.warning(f"{MAX_ATTEMPTS} portal code collisions in a row, falling back to suffixed code {code}")
    return code


async def store_code(redis: Redis | None, reservation_id: str, code: str) -> bool:
    if redis is None:
        logger.error("Redis not configured - cannot store portal code")
        return False

    code = normalize_code(code)
    try:
        async with redis.pipeline(transaction=True) as pipe:
            pipe.set(PORTAL_CODE.format(code=code), reservation_id)
            pipe.set(RESERVATION_PORTAL_CODE.format(reservation_id=reservation_id), code)
            await pipe.execute()
    except RedisError as e:
        logger.error(f"Error storing portal code for reservation {reservation_id}: {e}")
        return False

    logger.info(f"Stored portal code {code} for reservation {reservation_id}")
    return True


async def lookup_by_code(redis: Redis | None, code: str) -> str | None:
    """Reservation id for `code`; None means not provisioned (or store unavailable).

    A forward mapping without its reverse is a half-finished write and gets repaired.
    """
    if redis is None:
        return None

    code = normalize_code(code)
    try:
        reservation_id = await redis.get(PORTAL_CODE.format(code=code))
        if reservation_id is None:
            return None
        reverse_key = RESERVATION_PORTAL_CODE.format(reservation_id=reservation_id)
        if await redis.set(reverse_key, code, nx=True):
            logger.warning(f"Repaired missing reverse mapping {reservation_id} -> {code}")
        return reservation_id
    except RedisError as e:
        logger.error(f"Error looking up portal code {code}: {e}")
        return None


async def lookup_by_reservation(redis: Redis | None, reservation_id: str) -> str | None:
    if redis is None:
        return None
    try:
        return await redis.get(RESERVATION_PORTAL_CODE.format(reservation_id=reservation_id))
    except RedisError as e:
        logger.error(f"Error looking up portal code for reservation {reservation_id}: {e}")
        return None


async def get_or_create_code(redis: Redis | None, reservation_id: str) -> tuple[str, bool]:
    """Return (code, is_new). Check-before-write; concurrent callers may race, last write wins."""
    existing = await lookup_by_reservation(redis, reservation_id)
    if existing:
        return existing, False

    code = await generate_unique_code(redis)
    if not await store_code(redis, reservation_id, code):
        raise ServiceUnavailableError(f"Failed to store portal code for reservation {reservation_id}")
    return code, True
