"""Shared HTTP helpers used by the upstream fetcher and the icon store.

Encapsulates retry, timeout and error handling so callers only see a
``FetchError`` on failure. This module is dependency-light and can be
imported by both registry/* and charts/* without cycles.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests
import yaml

from constants import Constants
from common.errors import FetchError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

_RETRY_STATUS = {429, 500, 502, 503, 504}


def robust_get(
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[Dict[str, str], bytes]:
    """Perform a GET request with timeout and retries, returning (headers, body).

    Transient failures (timeouts, connection errors, 429 and 5xx responses) are
    retried with exponential backoff. Anything else that is not a 200 fails
    immediately.

    Raises:
        FetchError: If the request ultimately fails.
    """
    safe_target = safe_url(url)
    request_headers = {"User-Agent": Constants.USER_AGENT}
    if headers:
        request_headers.update(headers)

    last_exception = None
    for attempt in range(Constants.HTTP_RETRY_MAX):
        if attempt:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                        attempt=attempt + 1
                    )
                )
            try:
                response = requests.get(
                    url,
                    timeout=Constants.REQUEST_TIMEOUT,
                    headers=request_headers,
                    **kwargs
                )
            except requests.Timeout:
                last_exception = f"timed out after {Constants.REQUEST_TIMEOUT} seconds"
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_exception = str(exc)
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target
                )
            )
        if response.status_code == 200:
            return dict(response.headers), response.content
        if response.status_code in _RETRY_STATUS:
            last_exception = f"HTTP {response.status_code}"
            continue
        raise FetchError(f"{context}: GET {safe_target} returned HTTP {response.status_code}")

    raise FetchError(
        f"{context}: GET {safe_target} failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"
    )


def get_yaml(url: str, *, context: str, **kwargs: Any) -> Any:
    """GET ``url`` and decode the body as YAML.

    Raises:
        FetchError: On transport failure or undecodable YAML.
    """
    _, body = robust_get(url, context=context, **kwargs)
    try:
        return yaml.safe_load(body)
    except yaml.YAMLError as exc:
        raise FetchError(f"{context}: invalid YAML from {safe_url(url)}: {exc}") from exc
