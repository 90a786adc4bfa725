import logging
from typing import Any, Dict, Optional

import requests


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15


def post_json(
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> requests.Response:
    """POST a JSON body and return the raw response.

    Transport errors (including ``requests.Timeout``) propagate so callers
    can choose their own retry or fallback behaviour.
    """
    merged_headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if headers:
        merged_headers.update(headers)
    return requests.post(url, json=payload, headers=merged_headers, timeout=timeout_seconds)


def post_form(
    url: str,
    data: Dict[str, Any],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> requests.Response:
    return requests.post(url, data=data, timeout=timeout_seconds)


def response_json(response: requests.Response) -> Dict[str, Any]:
    """Decode a JSON body, returning an empty dict for non-JSON replies."""
    try:
        body = response.json()
    except ValueError:
        logger.debug(f"Non-JSON response from {response.url} ({response.status_code})")
        return {}
    return body if isinstance(body, dict) else {"data": body}
