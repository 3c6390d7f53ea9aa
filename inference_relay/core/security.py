import hmac
from collections.abc import Iterable

_BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header, if any."""
    if not authorization or not authorization[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


def token_is_accepted(token: str, accepted: Iterable[str]) -> bool:
    """Constant-time membership check against the accepted token set."""
    matched = False
    for candidate in accepted:
        if hmac.compare_digest(token.encode(), candidate.encode()):
            matched = True
    return matched
