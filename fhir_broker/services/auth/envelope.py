import logging
import time
from typing import Any, Dict

import jwt

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def now() -> int:
    return int(time.time())


def encode_envelope(
    claims: Dict[str, Any], key: str, lifetime: int, kid: str | None = None
) -> str:
    """
    Encodes claims as a compact JWT with iat/exp set from lifetime (seconds).

    The signature uses a placeholder key and is NOT verified by decode_envelope. A
    production deployment must swap this for a real signed token scheme; the claim
    layout is what the exchange protocol depends on.
    """
    issued_at = now()
    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime}
    headers = {"kid": kid} if kid else None
    return jwt.encode(payload, key, algorithm=ALGORITHM, headers=headers)


def decode_envelope(token: str | None) -> Dict[str, Any] | None:
    """
    Returns the claims of an envelope, or None when it cannot be decoded or is expired.
    """
    if not token:
        return None

    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired envelope")
        return None
    except jwt.PyJWTError as e:
        logger.info("Could not decode envelope: %s", e)
        return None

    if not isinstance(claims, dict):
        return None

    return claims


def extract_bearer_token(authorization: str | None) -> str | None:
    if authorization is None or not authorization.startswith("Bearer "):
        return None

    token = authorization[len("Bearer "):].strip()
    return token or None
