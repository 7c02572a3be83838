"""FastAPI dependencies for the Tangent ingest API.

Every route resolves the wired SDK first, so an unconfigured deployment
answers 503 before any key check. The expected key comes from the SDK's
settings (TANGENT_API_KEY), never from a per-request environment read.
"""
import logging
import secrets
from typing import Annotated

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..sdk import TangentSDK


logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-TANGENT-API-KEY", auto_error=False)


def get_sdk(request: Request) -> TangentSDK:
    """Resolve the SDK wired into the application state.

    Raises:
        HTTPException: 503 if no SDK is configured
    """
    sdk = getattr(request.app.state, "sdk", None)
    if sdk is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SDK is not configured",
        )
    return sdk


async def require_api_key(
    request: Request,
    api_key: Annotated[str | None, Security(api_key_header)] = None,
) -> str:
    """Validate the X-TANGENT-API-KEY header against the SDK settings.

    Returns:
        Validated API key

    Raises:
        HTTPException: 503 without an SDK, 401 if the key is missing or invalid
        RuntimeError: If the SDK settings carry no API key
    """
    expected_key = get_sdk(request).settings.api_key

    if not expected_key:
        raise RuntimeError("TANGENT_API_KEY environment variable not configured")

    if not api_key or not secrets.compare_digest(
        api_key.encode("utf-8"), expected_key.encode("utf-8")
    ):
        logger.warning("Rejected request to %s: invalid API key", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    return api_key
