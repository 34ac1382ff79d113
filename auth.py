import hmac
from typing import Optional

import structlog
from fastapi import Header, Request

from errors import Unauthorized

logger = structlog.get_logger(__name__)


async def require_admin_key(request: Request, x_api_key: Optional[str] = Header(default=None)) -> None:
    """Guard for administrative routes; closed when no key is configured."""
    valid_key = request.app.state.config.admin_api_key
    if not valid_key:
        logger.warning("admin_api_disabled", reason="FIRESTORE_ADMIN_API_KEY not set")
        raise Unauthorized("Unauthorized - Invalid or missing API key")
    if not x_api_key or not hmac.compare_digest(x_api_key, valid_key):
        logger.warning("admin_api_key_rejected", path=request.url.path)
        raise Unauthorized("Unauthorized - Invalid or missing API key")
