import hmac
import logging

from fastapi import Header, HTTPException, status

from app.config import settings

logger = logging.getLogger(__name__)


async def require_internal_secret(
    x_internal_secret: str | None = Header(default=None),
) -> None:
    """Guard endpoints that spend LLM credits behind a shared secret header."""
    if not settings.internal_api_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Internal API secret not configured",
        )
    if x_internal_secret is None or not hmac.compare_digest(
        x_internal_secret.encode(), settings.internal_api_secret.encode(),
    ):
        logger.warning("Rejected request with missing or invalid internal secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
