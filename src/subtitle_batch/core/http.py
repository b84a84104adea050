"""HTTP helpers shared by the service clients."""

from typing import Any, Optional
import json
import logging

import httpx

from ..exceptions import ApiError, NetworkError

logger = logging.getLogger(__name__)

# Worth another attempt: the server may recover on its own
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def parse_api_error(error_text: str, context: str) -> str:
    """Turn an error response body into a readable message."""
    try:
        data = json.loads(error_text)
    except ValueError:
        data = None

    if isinstance(data, dict) and (data.get("error") or data.get("message")):
        return f"{context}: {data.get('error') or data.get('message')}"

    if "401" in error_text or "Unauthorized" in error_text:
        return f"{context}: Unauthorized. Please check your API key."
    if "403" in error_text or "Forbidden" in error_text:
        return f"{context}: Access denied. Please check your API key permissions."
    if "429" in error_text or "Too Many Requests" in error_text:
        return f"{context}: Rate limit exceeded. Please try again later."

    return f"{context}: {error_text or 'Unknown error'}"


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    context: str,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Send one request and classify failures.

    Raises:
        NetworkError: Transport failure or a retryable status code.
        ApiError: Any other non-2xx response.
    """
    try:
        response = await client.request(
            method,
            url,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            **kwargs,
        )
    except httpx.TimeoutException as e:
        raise NetworkError(f"{context}: request timed out ({type(e).__name__})")
    except httpx.TransportError as e:
        raise NetworkError(f"{context}: network error ({e or type(e).__name__})")

    if response.is_success:
        return response

    message = f"[HTTP {response.status_code}] {parse_api_error(response.text, context)}"
    if response.status_code in RETRYABLE_STATUS_CODES:
        raise NetworkError(message)
    raise ApiError(message, status_code=response.status_code)


def json_body(response: httpx.Response, context: str) -> dict:
    """Decode a JSON object body or raise :class:`ApiError`."""
    try:
        data = response.json()
    except ValueError as e:
        raise ApiError(f"{context}: invalid JSON response ({e})", response.status_code)
    if not isinstance(data, dict):
        raise ApiError(f"{context}: unexpected response shape", response.status_code)
    return data
