import hmac
from typing import Optional

from fastapi import Header, HTTPException, Query, status

from storeops.config import settings
from storeops.utils.logger import logger


async def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    api_key: Optional[str] = Query(None),
) -> None:
    """Shared-secret check for webhook and automation endpoints.

    Fails closed: without WEBHOOK_API_KEY every call is refused unless
    ALLOW_INSECURE_WEBHOOKS is explicitly enabled.
    """
    expected = settings.WEBHOOK_API_KEY
    if not expected:
        if settings.ALLOW_INSECURE_WEBHOOKS:
            return None
        logger.warning("Rejected automation call: WEBHOOK_API_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="webhook_api_key_not_configured",
        )

    provided = x_api_key or api_key
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected automation call with invalid API key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_api_key")
    return None
