"""App token guard for the notification routes.

When ``APP_TOKEN`` is configured, callers must present it via one of:

- query parameter ``?token=<token>``
- ``Authorization: Bearer <token>``
- Gotify-compatible ``X-Gotify-Key: <token>``

With no app token configured the routes are open.
"""

from __future__ import annotations

import hmac
import logging

from mizito_forwarder.errors.definitions import ErrUnauthorized

logger = logging.getLogger(__name__)

AUTH_QUERY_PARAM = "token"
AUTH_HEADER_GOTIFY = "X-Gotify-Key"
_BEARER_PREFIX = "Bearer "


def extract_app_token(
    *,
    query_token: str = "",
    authorization: str = "",
    gotify_key: str = "",
) -> str:
    """Return the first token found, in query / bearer / Gotify order."""
    if query_token:
        return query_token
    if authorization.startswith(_BEARER_PREFIX):
        return authorization[len(_BEARER_PREFIX) :].strip()
    return gotify_key


def check_app_token(expected: str, provided: str) -> None:
    """Raise unless *provided* matches the configured app token.

    Raises:
        ForwarderError: 401 ``unauthorized``.
    """
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise ErrUnauthorized
