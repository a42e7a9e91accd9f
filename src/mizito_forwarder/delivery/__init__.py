"""Delivery — chat payload construction and the send/refresh/retry pipeline."""

from __future__ import annotations

from mizito_forwarder.delivery.payload import MessagePayload, PayloadBuilder
from mizito_forwarder.delivery.pipeline import (
    DeliveryAttempt,
    DeliveryEvent,
    DeliveryPipeline,
    DeliveryState,
    MessageSender,
    parse_send_response,
)

__all__ = [
    "DeliveryAttempt",
    "DeliveryEvent",
    "DeliveryPipeline",
    "DeliveryState",
    "MessagePayload",
    "MessageSender",
    "PayloadBuilder",
    "parse_send_response",
]
