from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from shared.config import settings
from .jwt_handler import verify_access_token


def user_id_or_ip(request: Request) -> str:
    """
    SlowAPI key: bids are limited per bidder, so one account cannot flood an
    auction from many addresses. Login has no token yet and is limited per IP.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        claims = verify_access_token(token)
        if claims and claims.get("sub"):
            return f"user:{claims['sub']}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=user_id_or_ip, enabled=settings.RATE_LIMIT_ENABLED)
