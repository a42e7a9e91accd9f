"""Mizito chat message payload.

The chat endpoint expects the same message object the Mizito web client
sends, including Persian (Jalali calendar) date and time strings. The
``randomId`` field is the per-message correlation value: it is generated
once per delivery and reused by every retry of that delivery.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

if TYPE_CHECKING:
    from collections.abc import Callable

    from mizito_forwarder.config.settings import MizitoConfig

# Monday first, matching ``datetime.weekday()``.
PERSIAN_WEEKDAYS = (
    "دوشنبه",
    "سه‌شنبه",
    "چهارشنبه",
    "پنج‌شنبه",
    "جمعه",
    "شنبه",
    "یکشنبه",
)

PERSIAN_MONTHS = (
    "فروردین",
    "اردیبهشت",
    "خرداد",
    "تیر",
    "مرداد",
    "شهریور",
    "مهر",
    "آبان",
    "آذر",
    "دی",
    "بهمن",
    "اسفند",
)

_PERSIAN_DIGITS = str.maketrans("0123456789", "۰۱۲۳۴۵۶۷۸۹")

# Cumulative day counts at the start of each Gregorian month (non-leap).
_GREGORIAN_DAYS_BEFORE_MONTH = (0, 31, 59, 90, 120, 151, 181, 212, 243, 273, 304, 334)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def gregorian_to_jalali(year: int, month: int, day: int) -> tuple[int, int, int]:
    """Convert a Gregorian date to the Jalali (Solar Hijri) calendar.

    Uses the 33-year arithmetic cycle, which agrees with the astronomical
    calendar for the years 1178-1633 SH.
    """
    gy2 = year + 1 if month > 2 else year
    days = (
        355666
        + 365 * year
        + (gy2 + 3) // 4
        - (gy2 + 99) // 100
        + (gy2 + 399) // 400
        + day
        + _GREGORIAN_DAYS_BEFORE_MONTH[month - 1]
    )
    jy = -1595 + 33 * (days // 12053)
    days %= 12053
    jy += 4 * (days // 1461)
    days %= 1461
    if days > 365:
        jy += (days - 1) // 365
        days = (days - 1) % 365
    if days < 186:
        jm = 1 + days // 31
        jd = 1 + days % 31
    else:
        jm = 7 + (days - 186) // 30
        jd = 1 + (days - 186) % 30
    return jy, jm, jd


def to_persian_digits(value: int | str) -> str:
    """Render ASCII digits with Persian numerals."""
    return str(value).translate(_PERSIAN_DIGITS)


def format_persian_date(moment: datetime) -> str:
    """Format as ``<weekday> <day> <month>``, e.g. ``چهارشنبه ۱ فروردین``."""
    _, month, day = gregorian_to_jalali(moment.year, moment.month, moment.day)
    weekday = PERSIAN_WEEKDAYS[moment.weekday()]
    return f"{weekday} {to_persian_digits(day)} {PERSIAN_MONTHS[month - 1]}"


def format_persian_time(moment: datetime) -> str:
    """Format as zero-padded ``HH:MM`` in Persian numerals."""
    return to_persian_digits(f"{moment.hour:02d}:{moment.minute:02d}")


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessagePayload:
    """A chat message as posted to ``/api/chat/send``.

    Attributes:
        dialog: Target dialog id.
        sender: Sending user id (``from`` on the wire).
        message: Message text.
        date: Epoch milliseconds when the message was built.
        random_id: Correlation value, stable across retries.
        r_date: Persian weekday, day and month.
        r_time: Persian ``HH:MM``.
    """

    dialog: str
    sender: str
    message: str
    date: int
    random_id: float
    r_date: str
    r_time: str
    rich_message_entities: list[Any] = field(default_factory=list)
    rich_message: dict[str, Any] = field(default_factory=dict)

    @property
    def r_full_date(self) -> str:
        return f"{self.r_time} - {self.r_date}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the field names the Mizito web client uses."""
        return {
            "_": "message",
            "_id": 1,
            "local": 1,
            "dialog": self.dialog,
            "out": True,
            "message": self.message,
            "media": None,
            "from": self.sender,
            "date": self.date,
            "seen_count": 1,
            "randomId": self.random_id,
            "pending": True,
            "mid": 1,
            "id": 1,
            "richMessageEntities": list(self.rich_message_entities),
            "richMessage": dict(self.rich_message),
            "rDate": self.r_date,
            "rTime": self.r_time,
            "rFullDate": self.r_full_date,
            "seen": False,
            "start_unread": False,
            "needAvatar": True,
            "needDate": True,
            "dir": True,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PayloadBuilder:
    """Builds :class:`MessagePayload` objects for the configured dialog."""

    def __init__(
        self,
        config: MizitoConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._dialog_id = config.dialog_id
        self._from_user_id = config.from_user_id
        self._tz = ZoneInfo(config.timezone)
        self._clock = clock
        self._rng = rng or random.Random()  # noqa: S311

    def build(self, text: str) -> MessagePayload:
        now = self._clock()
        local = now.astimezone(self._tz)
        return MessagePayload(
            dialog=self._dialog_id,
            sender=self._from_user_id,
            message=text,
            date=int(now.timestamp() * 1000),
            random_id=self._rng.random(),
            r_date=format_persian_date(local),
            r_time=format_persian_time(local),
        )
