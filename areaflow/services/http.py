"""
Shared httpx helpers for service plugins.

Every call opens a short-lived AsyncClient with an explicit timeout and maps
failures onto the AreaFlow error taxonomy:

- timeouts, connection errors, 429 and 5xx -> TransientExternalError
- other 4xx                                -> PermanentExternalError
- a body that is not JSON                  -> TransientExternalError
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import PermanentExternalError, TransientExternalError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0

# Keep error messages short; remote bodies can be large HTML pages
_MAX_ERROR_BODY = 200


async def request_json(
    method: str,
    url: str,
    *,
    service: str = "",
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json: Any = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> Any:
    """Send a request and return the decoded JSON body (None for empty bodies)."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
            )
    except httpx.TimeoutException as e:
        raise TransientExternalError(
            f"{service or 'http'}: {method} {url} timed out after {timeout}s",
            service_name=service,
        ) from e
    except httpx.HTTPError as e:
        raise TransientExternalError(
            f"{service or 'http'}: {method} {url} failed: {e}",
            service_name=service,
        ) from e

    status = response.status_code
    if status == 429 or status >= 500:
        raise TransientExternalError(
            f"{service or 'http'} API error: {status} - {response.text[:_MAX_ERROR_BODY]}",
            service_name=service,
            status_code=status,
        )
    if status >= 400:
        raise PermanentExternalError(
            f"{service or 'http'} API error: {status} - {response.text[:_MAX_ERROR_BODY]}",
            service_name=service,
            status_code=status,
        )

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise TransientExternalError(
            f"{service or 'http'}: invalid JSON from {url}",
            service_name=service,
            status_code=status,
        ) from e


async def fetch_json(url: str, **kwargs: Any) -> Any:
    """GET ``url`` and return decoded JSON."""
    return await request_json("GET", url, **kwargs)


async def post_json(url: str, body: Any, **kwargs: Any) -> Any:
    """POST a JSON body to ``url`` and return decoded JSON."""
    return await request_json("POST", url, json=body, **kwargs)
