"""Pre-built error instances used by the HTTP layer."""

from __future__ import annotations

from mizito_forwarder.errors.forwarder_errors import ForwarderError

# -- Authentication --------------------------------------------------------

ErrUnauthorized = ForwarderError(
    "Valid app token required. Pass it via ?token=, Authorization: Bearer, "
    "or X-Gotify-Key header.",
    status_code=401,
    code="unauthorized",
)

# -- Validation ------------------------------------------------------------

ErrInvalidJSON = ForwarderError("Invalid JSON", status_code=400, code="invalid-json")
ErrEmptyNotification = ForwarderError(
    "Title or message is required", status_code=400, code="empty-notification"
)
