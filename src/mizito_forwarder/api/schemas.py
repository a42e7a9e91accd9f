"""API request/response Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ErrorResponse(BaseModel):
    """Standard error body: ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


class GotifyNotification(BaseModel):
    """POST /message — a Gotify-style push notification.

    Gotify clients send ``null`` for fields they leave unset; those read as
    empty values rather than failing validation.
    """

    title: str | None = ""
    message: str | None = ""
    priority: int | None = 0
    extras: dict[str, Any] | None = Field(default_factory=dict)

    @field_validator("title", "message", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("priority", mode="before")
    @classmethod
    def _null_priority(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("extras", mode="before")
    @classmethod
    def _null_extras(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_text(self) -> str:
        """Combine title and message into the chat text.

        ``"title: message"`` when both are set, otherwise whichever one is.
        """
        if self.title and self.message:
            return f"{self.title}: {self.message}"
        return self.title or self.message or ""


class NotificationResponse(BaseModel):
    """Result of forwarding a notification."""

    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    message: str = "Mizito Forwarder is running"


class ServiceInfoResponse(BaseModel):
    service: str = "Mizito Forwarder"
    version: str
    status: str = "running"
