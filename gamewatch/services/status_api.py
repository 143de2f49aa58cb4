import logging
import re
from typing import Optional

import httpx

from gamewatch.models.server import NOT_AVAILABLE

logger = logging.getLogger(__name__)

DEFAULT_STATUS_API_URL = "https://api.mcstatus.io/v2/status/{edition}/{host}:{port}"
DEFAULT_TIMEOUT_SECONDS = 5.0

# Example body fragment: "players":{"online":71,"max":100,"list":[...]}
_ONLINE_PATTERN = re.compile(r'"players":\s*\{[^}]*"online":\s*(\d+)')
_MAX_PATTERN = re.compile(r'"max":\s*(\d+)')


def parse_status_body(body: str) -> str:
    """
    Extract '<online>/<max>' from a status API response body.

    The body is matched as text instead of being parsed as JSON so that
    additions to the upstream schema do not break the fallback. Returns
    'N/A' unless both numbers are present.
    """
    online_match = _ONLINE_PATTERN.search(body)
    max_match = _MAX_PATTERN.search(body)
    if not online_match or not max_match:
        return NOT_AVAILABLE
    return f"{online_match.group(1)}/{max_match.group(1)}"


async def resolve_via_status_api(
    host: str,
    port: int,
    edition: str = "java",
    client: Optional[httpx.AsyncClient] = None,
    url_template: str = DEFAULT_STATUS_API_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """
    Ask a third-party status aggregator for the player count of a server.

    This is the last fallback tier of the Minecraft probes. It issues exactly
    one GET request and never raises: network errors, timeouts, non-2xx
    answers and unusable bodies all end in 'N/A'.
    """
    url = url_template.format(edition=edition, host=host, port=port)
    logger.debug("Querying status API %s", url)

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(url)
        else:
            response = await client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning(
            "Status API fallback failed for %s:%s: %s: %s",
            host,
            port,
            type(exc).__name__,
            exc,
        )
        return NOT_AVAILABLE

    result = parse_status_body(response.text)
    if result == NOT_AVAILABLE:
        logger.warning("Status API response for %s:%s has no player counts", host, port)
    else:
        logger.debug("Status API returned %s for %s:%s", result, host, port)
    return result
