"""
Input validation for trip and driver fields.

Every check raises :class:`ValidationError` and never mutates anything, so a
failed create writes no partial state.
"""

from __future__ import annotations

import enum
import math
import re
from typing import Any, Optional, TypeVar

from .enums import TRIP_CATEGORIES, TripKind
from .exceptions import ValidationError

# Indian mobile numbers, as accepted by the delivery wizard.
PHONE_PATTERN = re.compile(r"^\+91[6-9]\d{9}$")


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_coordinates(lat: Any, lng: Any, field: str = "location") -> None:
    if lat is None or lng is None:
        raise ValidationError(
            f"{field} requires both latitude and longitude", field=field
        )
    if not (_is_number(lat) and _is_number(lng)):
        raise ValidationError(f"{field} coordinates must be numbers", field=field)
    if not -90 <= lat <= 90:
        raise ValidationError(
            f"{field} latitude must be within [-90, 90]", field=field, latitude=lat
        )
    if not -180 <= lng <= 180:
        raise ValidationError(
            f"{field} longitude must be within [-180, 180]",
            field=field,
            longitude=lng,
        )


def validate_category(kind: TripKind, category: Any) -> None:
    allowed = TRIP_CATEGORIES[kind]
    if not isinstance(category, str) or category not in allowed:
        raise ValidationError(
            f"category for a {kind.value} must be one of: "
            + ", ".join(sorted(allowed)),
            field="category",
            category=category,
        )


def validate_fare(fare: Any) -> None:
    if not _is_number(fare) or fare <= 0:
        raise ValidationError(
            "fare must be a positive number", field="fare", fare=fare
        )


def validate_phone(phone: Any, field: str = "recipient_phone") -> None:
    if not isinstance(phone, str) or not PHONE_PATTERN.match(phone):
        raise ValidationError(
            "phone number must be in format +91XXXXXXXXXX", field=field
        )


def validate_radius(radius_km: Any) -> None:
    if not _is_number(radius_km) or radius_km <= 0:
        raise ValidationError(
            "radius_km must be a positive number",
            field="radius_km",
            radius_km=radius_km,
        )


E = TypeVar("E", bound=enum.Enum)


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """Coerce a raw label into *enum_cls* or raise :class:`ValidationError`."""
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"{field} must be one of: " + ", ".join(m.value for m in enum_cls),
            field=field,
            value=value,
        ) from None


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()
