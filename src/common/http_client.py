"""Shared HTTP helpers used by the index client and the installer.

Encapsulates request/timeout error handling so callers only ever see the
project's exception types. Transport failures become NetworkError and a
404 becomes the caller-supplied not-found error.
"""
from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Dict, Optional, Type

import requests

from constants import Constants
from errors import NetworkError, NotFoundError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

HEADERS_JSON = {"Accept": "application/json"}


def _default_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {"User-Agent": Constants.USER_AGENT}
    if extra:
        headers.update(extra)
    return headers


def safe_get(url: str, *, context: str, stream: bool = False, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces."""
    safe_target = safe_url(url)
    headers = _default_headers(kwargs.pop("headers", None))
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context
                )
            )
        try:
            res = requests.get(
                url, timeout=Constants.REQUEST_TIMEOUT, headers=headers, stream=stream, **kwargs
            )
        except requests.Timeout as exc:
            logger.error(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            raise NetworkError(f"{context}: request to {safe_target} timed out") from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            raise NetworkError(f"{context}: request to {safe_target} failed: {exc}") from exc
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success" if res.ok else "non_2xx",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context
                )
            )
        return res


def get_json(
    url: str,
    *,
    context: str,
    not_found: Type[NotFoundError] = NotFoundError,
    **kwargs: Any
) -> Any:
    """GET a JSON document.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs and error messages.
        not_found: Exception class raised on HTTP 404.

    Returns:
        The decoded JSON document.

    Raises:
        NotFoundError: The server answered 404 (as ``not_found``).
        NetworkError: Transport failure, other non-2xx status, or invalid JSON.
    """
    res = safe_get(url, context=context, headers=HEADERS_JSON, **kwargs)
    if res.status_code == 404:
        logger.debug(
            "HTTP 404 received",
            extra=extra_context(
                event="http_response",
                component="http_client",
                outcome="not_found",
                status_code=404,
                target=safe_url(url)
            )
        )
        raise not_found(f"{context}: {safe_url(url)} not found")
    if res.status_code != 200:
        raise NetworkError(f"{context}: unexpected status {res.status_code} from {safe_url(url)}")
    try:
        return res.json()
    except ValueError as exc:
        raise NetworkError(f"{context}: invalid JSON from {safe_url(url)}") from exc


def download_file(url: str, dest: str, *, context: str = "download") -> str:
    """Stream ``url`` to ``dest``.

    Bytes land in a temporary sibling first and are moved into place once
    the transfer finished, so ``dest`` never holds a truncated body.
    """
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)
    with Timer() as t:
        res = safe_get(url, context=context, stream=True)
        try:
            if res.status_code == 404:
                raise NotFoundError(f"{context}: {safe_url(url)} not found")
            if res.status_code != 200:
                raise NetworkError(
                    f"{context}: unexpected status {res.status_code} from {safe_url(url)}"
                )
            fd, tmp_path = tempfile.mkstemp(prefix=".partial-", dir=dest_dir)
            try:
                with os.fdopen(fd, "wb") as fh:
                    for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
                os.replace(tmp_path, dest)
            except requests.RequestException as exc:
                os.unlink(tmp_path)
                raise NetworkError(f"{context}: transfer from {safe_url(url)} failed: {exc}") from exc
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        finally:
            res.close()
    logger.info("Downloaded %s (%d ms)", os.path.basename(dest), t.duration_ms())
    return dest
