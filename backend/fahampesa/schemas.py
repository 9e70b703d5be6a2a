# Overview: Typed DTOs for nested branch documents, normalized once at the store boundary.

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .errors import ValidationError


DAYS_OF_WEEK = (
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
)

_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """
    Return the first present key.

    Older documents were written with camelCase keys; snake_case is canonical.
    """
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _clean_float(value: Any, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")


@dataclass
class BranchLocation:
    address: str = ""
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    landmark: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "BranchLocation":
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("location must be an object")
        return cls(
            address=_clean_str(_pick(data, "address")) or "",
            city=_clean_str(_pick(data, "city")),
            region=_clean_str(_pick(data, "region")),
            postal_code=_clean_str(_pick(data, "postal_code", "postalCode")),
            country=_clean_str(_pick(data, "country")),
            latitude=_clean_float(_pick(data, "latitude", "lat"), "latitude"),
            longitude=_clean_float(_pick(data, "longitude", "lng"), "longitude"),
            landmark=_clean_str(_pick(data, "landmark")),
        )

    def validate(self) -> None:
        if not self.address:
            raise ValidationError("Branch address is required")
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise ValidationError("latitude must be between -90 and 90")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise ValidationError("longitude must be between -180 and 180")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BranchContact:
    phone: Optional[str] = None
    alternate_phone: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "BranchContact":
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("contact must be an object")
        return cls(
            phone=_clean_str(_pick(data, "phone")),
            alternate_phone=_clean_str(_pick(data, "alternate_phone", "alternatePhone")),
            email=_clean_str(_pick(data, "email")),
            whatsapp=_clean_str(_pick(data, "whatsapp")),
        )

    def validate(self) -> None:
        if self.email and not EMAIL_RE.match(self.email):
            raise ValidationError("Invalid email format")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OpeningHours:
    day_of_week: str
    is_open: bool = True
    open_time: Optional[str] = None
    close_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "OpeningHours":
        if not isinstance(data, dict):
            raise ValidationError("opening_hours entries must be objects")
        day = _clean_str(_pick(data, "day_of_week", "dayOfWeek"))
        return cls(
            day_of_week=day.upper() if day else "",
            is_open=bool(_pick(data, "is_open", "isOpen", default=True)),
            open_time=_clean_str(_pick(data, "open_time", "openTime")),
            close_time=_clean_str(_pick(data, "close_time", "closeTime")),
        )

    def validate(self) -> None:
        if not self.day_of_week:
            raise ValidationError("Day of week is required for opening hours")
        if self.day_of_week not in DAYS_OF_WEEK:
            raise ValidationError(f"Invalid day_of_week: {self.day_of_week}")
        if not self.is_open:
            return
        if not self.open_time or not self.close_time:
            raise ValidationError(f"Open and close times are required for {self.day_of_week}")
        if not _TIME_RE.match(self.open_time):
            raise ValidationError(f"Invalid open time format for {self.day_of_week}. Use HH:MM format.")
        if not _TIME_RE.match(self.close_time):
            raise ValidationError(f"Invalid close time format for {self.day_of_week}. Use HH:MM format.")

    def to_dict(self) -> dict:
        return asdict(self)


def default_opening_hours() -> list[OpeningHours]:
    """Mon-Sat 08:00-18:00, closed Sunday."""
    return [
        OpeningHours(day_of_week=day, is_open=day != "SUNDAY",
                     open_time=None if day == "SUNDAY" else "08:00",
                     close_time=None if day == "SUNDAY" else "18:00")
        for day in DAYS_OF_WEEK
    ]


def parse_opening_hours(raw: list | None) -> list[OpeningHours]:
    """
    Normalize and validate a client-supplied opening-hours list.

    Empty/missing input yields the default week. Duplicate days are rejected,
    and missing days are filled in as closed so the stored list always has
    one entry per day of the week.
    """
    if not raw:
        return default_opening_hours()
    if not isinstance(raw, list):
        raise ValidationError("opening_hours must be a list")

    by_day: dict[str, OpeningHours] = {}
    for entry in raw:
        hours = OpeningHours.from_dict(entry)
        hours.validate()
        if hours.day_of_week in by_day:
            raise ValidationError(f"Duplicate opening hours for {hours.day_of_week}")
        by_day[hours.day_of_week] = hours

    return [by_day.get(day, OpeningHours(day_of_week=day, is_open=False)) for day in DAYS_OF_WEEK]

