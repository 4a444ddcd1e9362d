"""Rate limiting for the operator endpoints (SlowAPI), keyed on the caller's IP."""
from fastapi import Request
from slowapi import Limiter

from .config import settings


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, otherwise the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def manual_check_limit() -> str:
    """Limit for POST /notifications/check; read per request so RATE_LIMIT_PER_MINUTE changes apply."""
    return f"{settings.rate_limit_per_minute}/minute"


limiter = Limiter(key_func=client_ip)
