"""
Shared representation of the live moment, per-instance widget state and the
rendered view handed back to the host.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

DEFAULT_PARTNER_LABEL = "Your Partner"


class MomentValidationError(ValueError):
    """Raised when host input or a persisted record is missing data or is malformed."""


class SkinType(Enum):
    CLASSIC = "classic"
    CIRCLE = "circle"
    POLAROID = "polaroid"
    HEART = "heart"
    DUAL_PHOTO = "dual_photo"
    FLIP_CARD = "flip_card"
    SIMPLE = "simple"


class SizeClass(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


@dataclass(frozen=True, slots=True)
class Moment:
    """
    The single shared piece of content shown by every widget instance.

    ``partner_name`` is ``None`` when it was never set, which skins render as
    the neutral default label. An empty string means "set but blank".
    ``moment_id`` identifies the moment a reaction is sent for.
    """

    photo_ref: Optional[str] = None
    partner_name: Optional[str] = None
    note: Optional[str] = None
    captured_at: Optional[datetime] = None
    self_photo_ref: Optional[str] = None
    expires_at: Optional[datetime] = None
    moment_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_MOMENT

    def is_expired(self, *, reference: datetime) -> bool:
        """Return whether the moment should no longer be displayed."""
        if self.expires_at is None:
            return False
        return reference >= self.expires_at

    def to_record(self) -> str:
        return json.dumps(
            {
                "photo_ref": self.photo_ref,
                "partner_name": self.partner_name,
                "note": self.note,
                "captured_at": format_utc_iso(self.captured_at),
                "self_photo_ref": self.self_photo_ref,
                "expires_at": format_utc_iso(self.expires_at),
                "moment_id": self.moment_id,
            },
            sort_keys=True,
            ensure_ascii=False,
        )

    @classmethod
    def from_record(cls, record: str) -> "Moment":
        data = _load_record(record)
        return cls(
            photo_ref=_optional_string(data.get("photo_ref"), field="photo_ref"),
            partner_name=_optional_string(data.get("partner_name"), field="partner_name"),
            note=_optional_string(data.get("note"), field="note"),
            captured_at=_optional_timestamp(data.get("captured_at")),
            self_photo_ref=_optional_string(data.get("self_photo_ref"), field="self_photo_ref"),
            expires_at=_optional_timestamp(data.get("expires_at")),
            moment_id=_optional_string(data.get("moment_id"), field="moment_id"),
        )


EMPTY_MOMENT = Moment()


@dataclass(frozen=True, slots=True)
class InstanceState:
    """Presentation flags owned by one placed widget instance."""

    skin_type: SkinType = SkinType.SIMPLE
    size_class: SizeClass = SizeClass.MEDIUM
    toggle: bool = False
    extra: Mapping[str, str] = field(default_factory=dict)

    def toggled(self) -> "InstanceState":
        return replace(self, toggle=not self.toggle)

    def resized(self, size_class: SizeClass) -> "InstanceState":
        return replace(self, size_class=size_class)

    def to_record(self) -> str:
        return json.dumps(
            {
                "skin_type": self.skin_type.value,
                "size_class": self.size_class.value,
                "toggle": self.toggle,
                "extra": dict(self.extra),
            },
            sort_keys=True,
            ensure_ascii=False,
        )

    @classmethod
    def from_record(cls, record: str) -> "InstanceState":
        data = _load_record(record)
        try:
            skin_type = SkinType(data.get("skin_type", SkinType.SIMPLE.value))
            size_class = SizeClass(data.get("size_class", SizeClass.MEDIUM.value))
        except ValueError as exc:
            raise MomentValidationError(f"Invalid instance record: {exc}") from exc

        toggle = data.get("toggle", False)
        if not isinstance(toggle, bool):
            raise MomentValidationError("toggle must be a boolean.")

        extra = data.get("extra") or {}
        if not isinstance(extra, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in extra.items()
        ):
            raise MomentValidationError("extra must map strings to strings.")

        return cls(skin_type=skin_type, size_class=size_class, toggle=toggle, extra=extra)


@dataclass(frozen=True, slots=True)
class RenderedView:
    """Immutable render output for one instance; consumed once by the host."""

    instance_id: int
    skin_type: SkinType
    fields: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


def parse_skin_type(value: Any) -> SkinType:
    if isinstance(value, SkinType):
        return value
    try:
        return SkinType(str(value).strip().lower())
    except ValueError as exc:
        raise MomentValidationError(f"Unknown skin type: {value!r}") from exc


def parse_size_class(value: Any) -> SizeClass:
    if isinstance(value, SizeClass):
        return value
    try:
        return SizeClass(str(value).strip().lower())
    except ValueError as exc:
        raise MomentValidationError(
            "size class must be one of: small, medium, large."
        ) from exc


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalise a host-supplied timestamp to an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds (the bridge
    delivers doubles). Zero and negative epochs mean "no timestamp".
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise MomentValidationError("timestamp must not be a boolean.")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise MomentValidationError("timestamp must include a timezone.")
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        if not value.strip():
            return None
        return parse_iso8601_utc(value)
    raise MomentValidationError(f"Unsupported timestamp value: {value!r}")


def parse_iso8601_utc(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp that must be UTC.

    Accepts values ending with 'Z' or explicit '+00:00' offsets.
    """
    cleaned = value.strip()
    try:
        if cleaned.endswith("Z"):
            cleaned = cleaned[:-1] + "+00:00"
        dt = datetime.fromisoformat(cleaned)
    except ValueError as exc:
        raise MomentValidationError(
            "timestamp must be in ISO-8601 format (e.g. 2026-01-01T00:00:00Z)."
        ) from exc

    if dt.tzinfo is None:
        raise MomentValidationError("timestamp must include a timezone in UTC.")
    if dt.utcoffset() != timezone.utc.utcoffset(None):
        raise MomentValidationError("timestamp must be specified in UTC.")

    return dt.astimezone(timezone.utc)


def format_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """Return a canonical UTC ISO-8601 string with trailing 'Z'."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _load_record(record: str) -> Dict[str, Any]:
    try:
        data = json.loads(record)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MomentValidationError(f"Record is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MomentValidationError("Record root must be a JSON object.")
    return data


def _optional_string(value: Any, *, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MomentValidationError(f"{field} must be a string.")
    return value


def _optional_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MomentValidationError("timestamps must be stored as ISO-8601 strings.")
    return parse_iso8601_utc(value)
