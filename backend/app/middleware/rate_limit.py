from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

API_LIMIT = "120/minute"
SEARCH_LIMIT = "60/minute"
EXPENSIVE_LIMIT = "10/minute"


def client_key(request: Request) -> str:
    """Rate-limit key for a request.

    The left-most X-Forwarded-For address is only trusted when the app runs
    behind a proxy that sets it; otherwise any client could spoof it.
    """
    if settings.trusted_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    return get_remote_address(request)


limiter = Limiter(key_func=client_key, default_limits=[API_LIMIT])
