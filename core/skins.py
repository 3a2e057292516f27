"""
Skin registry and the render contract shared by every widget presentation.

Every skin is a pure function of the moment, the instance state, the resolved
photo(s) and the pass clock. Common rules (placeholder visibility, labels,
time-ago bucketing, size-class layout) live here once; skins only add the
fields that make them distinct.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from core.photo_resolver import DecodedImage, mask_circular
from shared.moment import (
    DEFAULT_PARTNER_LABEL,
    InstanceState,
    Moment,
    RenderedView,
    SizeClass,
    SkinType,
)

MINUTE_MS = 60_000
HOUR_MS = 3_600_000
DAY_MS = 86_400_000

SELF_LABEL = "You"
NO_PHOTO_LABEL = "No photo yet"
NO_NOTE_LABEL = "No note yet\n\nYour partner hasn't sent a message 💕"
HEART_SUFFIX = " ❤️"


class UnknownSkinError(ValueError):
    """Raised when a skin tag has no registered renderer."""


class SkinRenderer(Protocol):
    def __call__(
        self,
        moment: Moment,
        state: InstanceState,
        photo: Optional[DecodedImage],
        *,
        now: datetime,
        self_photo: Optional[DecodedImage] = None,
    ) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class TimeAgo:
    unit: str
    value: int

    def label(self) -> str:
        if self.unit == "now":
            return "just now"
        return f"{self.value}{self.unit} ago"


def time_ago(captured_at: datetime, now: datetime) -> TimeAgo:
    """Bucket the elapsed time since ``captured_at``; identical for every skin."""
    elapsed_ms = int((now - captured_at).total_seconds() * 1000)
    if elapsed_ms < MINUTE_MS:
        return TimeAgo("now", 0)
    if elapsed_ms < HOUR_MS:
        return TimeAgo("m", elapsed_ms // MINUTE_MS)
    if elapsed_ms < DAY_MS:
        return TimeAgo("h", elapsed_ms // HOUR_MS)
    return TimeAgo("d", elapsed_ms // DAY_MS)


def size_layout(size_class: SizeClass) -> Dict[str, bool]:
    """Visibility of the secondary regions for a size class."""
    if size_class is SizeClass.SMALL:
        return {"info_visible": False, "reaction_visible": False}
    if size_class is SizeClass.LARGE:
        return {"info_visible": True, "reaction_visible": True}
    return {"info_visible": True, "reaction_visible": False}


def photo_fields(photo: Optional[DecodedImage], *, prefix: str = "") -> Dict[str, Any]:
    if photo is None:
        return {
            f"{prefix}placeholder_visible": True,
            f"{prefix}image_visible": False,
            f"{prefix}image": None,
        }
    return {
        f"{prefix}placeholder_visible": False,
        f"{prefix}image_visible": True,
        f"{prefix}image": photo,
    }


def text_fields(moment: Moment, *, now: datetime, name_suffix: str = "") -> Dict[str, Any]:
    """
    Partner name, note and time-ago label.

    A present-but-empty input leaves its field out so the host keeps whatever
    it showed before; a never-set partner name falls back to the default label.
    """
    fields: Dict[str, Any] = {}
    if moment.partner_name is None:
        fields["partner_name"] = DEFAULT_PARTNER_LABEL + name_suffix
    elif moment.partner_name:
        fields["partner_name"] = moment.partner_name + name_suffix
    if moment.note:
        fields["note"] = moment.note
    if moment.captured_at is not None:
        fields["time_ago"] = time_ago(moment.captured_at, now).label()
    return fields


def render_simple(moment, state, photo, *, now, self_photo=None):
    return {**photo_fields(photo), **text_fields(moment, now=now)}


def render_classic(moment, state, photo, *, now, self_photo=None):
    fields = {**photo_fields(photo), **text_fields(moment, now=now)}
    if moment.captured_at is None:
        fields["time_ago"] = NO_PHOTO_LABEL
    return fields


def render_circle(moment, state, photo, *, now, self_photo=None):
    masked = mask_circular(photo) if photo is not None else None
    return {**photo_fields(masked), **text_fields(moment, now=now)}


def render_polaroid(moment, state, photo, *, now, self_photo=None):
    return {**photo_fields(photo), **text_fields(moment, now=now, name_suffix=HEART_SUFFIX)}


def render_heart(moment, state, photo, *, now, self_photo=None):
    fields = {**photo_fields(photo), **text_fields(moment, now=now, name_suffix=HEART_SUFFIX)}
    fields["frame"] = "heart"
    return fields


def render_dual_photo(moment, state, photo, *, now, self_photo=None):
    fields = {**photo_fields(photo), **text_fields(moment, now=now)}
    fields.update(photo_fields(self_photo, prefix="self_"))
    fields["self_name"] = SELF_LABEL
    if "time_ago" in fields:
        fields["time_ago"] = f"Shared {fields['time_ago']}"
    return fields


def render_flip_card(moment, state, photo, *, now, self_photo=None):
    fields = {**photo_fields(photo), **text_fields(moment, now=now)}
    if state.toggle:
        fields["face"] = "back"
        fields.setdefault("note", NO_NOTE_LABEL)
    else:
        fields["face"] = "front"
        fields.pop("note", None)
    fields["front_visible"] = not state.toggle
    fields["back_visible"] = state.toggle
    return fields


class SkinRegistry:
    """Static mapping from skin tag to its render function."""

    def __init__(self) -> None:
        self._renderers: Dict[SkinType, SkinRenderer] = {}

    @classmethod
    def default(cls) -> "SkinRegistry":
        registry = cls()
        registry.register(SkinType.CLASSIC, render_classic)
        registry.register(SkinType.CIRCLE, render_circle)
        registry.register(SkinType.POLAROID, render_polaroid)
        registry.register(SkinType.HEART, render_heart)
        registry.register(SkinType.DUAL_PHOTO, render_dual_photo)
        registry.register(SkinType.FLIP_CARD, render_flip_card)
        registry.register(SkinType.SIMPLE, render_simple)
        return registry

    def register(self, skin_type: SkinType, renderer: Callable[..., Dict[str, Any]]) -> None:
        self._renderers[skin_type] = renderer

    def skin_types(self) -> List[SkinType]:
        return list(self._renderers)

    def uses_self_photo(self, skin_type: SkinType) -> bool:
        return skin_type is SkinType.DUAL_PHOTO

    def validate(self, skins: Iterable[Any]) -> List[SkinType]:
        """Resolve skin tags, raising UnknownSkinError for anything unregistered."""
        resolved: List[SkinType] = []
        for skin in skins:
            try:
                skin_type = skin if isinstance(skin, SkinType) else SkinType(str(skin).strip().lower())
            except ValueError as exc:
                raise UnknownSkinError(f"Unknown skin type: {skin!r}") from exc
            if skin_type not in self._renderers:
                raise UnknownSkinError(f"No renderer registered for skin {skin_type.value!r}")
            resolved.append(skin_type)
        return resolved

    def restricted(self, skins: Iterable[Any]) -> "SkinRegistry":
        """Return a registry holding only ``skins``; unknown tags raise UnknownSkinError."""
        registry = SkinRegistry()
        for skin_type in self.validate(skins):
            registry.register(skin_type, self._renderers[skin_type])
        return registry

    def render(
        self,
        instance_id: int,
        moment: Moment,
        state: InstanceState,
        photo: Optional[DecodedImage],
        *,
        now: datetime,
        self_photo: Optional[DecodedImage] = None,
    ) -> RenderedView:
        renderer = self._renderers.get(state.skin_type)
        if renderer is None:
            raise UnknownSkinError(f"No renderer registered for skin {state.skin_type.value!r}")
        fields = renderer(moment, state, photo, now=now, self_photo=self_photo)
        layout = size_layout(state.size_class)
        fields.update(layout)
        if layout["reaction_visible"] and moment.moment_id:
            fields["reaction_target"] = moment.moment_id
        return RenderedView(instance_id=instance_id, skin_type=state.skin_type, fields=fields)
