import logging

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
from shared.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Accept requests carrying one of the configured dashboard API keys."""
    if not api_key or api_key not in settings.API_KEYS:
        logger.warning("Rejected analytics request with an invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return api_key
