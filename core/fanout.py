"""
Fan-out engine: applies one update event and re-renders every affected widget instance.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from core.instance_directory import InstanceDirectory
from core.moment_store import MomentStore, StorageUnavailable
from core.photo_resolver import (
    DEFAULT_MAX_DIMENSION,
    DecodedImage,
    PhotoDecodeError,
    PhotoNotFound,
    PhotoResolver,
)
from core.skins import SkinRegistry, photo_fields, size_layout
from shared.moment import (
    EMPTY_MOMENT,
    InstanceState,
    Moment,
    RenderedView,
    SizeClass,
    SkinType,
)
from widget_runtime import logger as app_logger

DEFAULT_RENDER_WORKERS = 4


class FanoutError(Exception):
    """Base class for failures surfaced to the caller of ``FanoutEngine.apply``."""


class PersistFailed(FanoutError):
    """The update could not be persisted; no instance was re-rendered."""


class Painter(Protocol):
    """Host side that turns a RenderedView into concrete UI."""

    def paint(self, view: RenderedView) -> None:
        ...


@dataclass(frozen=True)
class NewMoment:
    moment: Moment


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class ToggleInstance:
    instance_id: int


@dataclass(frozen=True)
class PlaceInstance:
    instance_id: int
    skin_type: SkinType
    size_class: SizeClass = SizeClass.MEDIUM


@dataclass(frozen=True)
class ResizeInstance:
    instance_id: int
    size_class: SizeClass


@dataclass(frozen=True)
class RemoveInstance:
    instance_id: int


UpdateEvent = Union[
    NewMoment, Clear, Refresh, ToggleInstance, PlaceInstance, ResizeInstance, RemoveInstance
]


@dataclass(frozen=True)
class InstanceFailure:
    instance_id: int
    stage: str
    error: Exception


@dataclass(frozen=True)
class FanoutReport:
    views: Tuple[RenderedView, ...] = ()
    failures: Tuple[InstanceFailure, ...] = ()
    purged: Tuple[int, ...] = ()

    @property
    def instance_ids(self) -> List[int]:
        return [view.instance_id for view in self.views]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FanoutEngine:
    """
    Orchestrates persistence, instance discovery and per-instance rendering.

    ``apply`` calls are serialised so passes never interleave. Inside a pass,
    instances render in parallel on a worker pool and are painted on the
    calling thread in ascending id order. A failure while resolving, rendering
    or painting one instance never affects another.
    """

    def __init__(
        self,
        store: MomentStore,
        resolver: PhotoResolver,
        registry: SkinRegistry,
        directory: InstanceDirectory,
        painter: Painter,
        *,
        max_dim: int = DEFAULT_MAX_DIMENSION,
        workers: int = DEFAULT_RENDER_WORKERS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.registry = registry
        self.directory = directory
        self.painter = painter
        self.max_dim = max_dim
        self._clock = clock
        self._logger = app_logger.get_logger()
        self._apply_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if workers > 1:
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="widget-render")

    def apply(self, event: UpdateEvent) -> FanoutReport:
        with self._apply_lock:
            now = self._clock()
            if isinstance(event, NewMoment):
                self._persist(lambda: self.store.set_moment(event.moment), event)
                self.resolver.retain((event.moment.photo_ref, event.moment.self_photo_ref))
                return self._full_pass(event, now)
            if isinstance(event, Clear):
                self._persist(self.store.clear, event)
                self.resolver.clear_cache()
                return self._full_pass(event, now)
            if isinstance(event, Refresh):
                return self._full_pass(event, now)
            if isinstance(event, ToggleInstance):
                return self._update_single(event.instance_id, InstanceState.toggled, event, now)
            if isinstance(event, ResizeInstance):
                return self._update_single(
                    event.instance_id,
                    lambda state: state.resized(event.size_class),
                    event,
                    now,
                )
            if isinstance(event, PlaceInstance):
                state = InstanceState(skin_type=event.skin_type, size_class=event.size_class)
                self._persist(lambda: self.store.set_instance_state(event.instance_id, state), event)
                return self._render_and_emit([(event.instance_id, state)], now)
            if isinstance(event, RemoveInstance):
                self._persist(lambda: self.store.delete_instance_state(event.instance_id), event)
                self._logger.info("Purged state for deleted instance {}", event.instance_id)
                return FanoutReport(purged=(event.instance_id,))
        raise TypeError(f"Unsupported update event: {event!r}")

    def has_instances(self) -> bool:
        return any(self.directory.instance_ids(skin) for skin in self.registry.skin_types())

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _persist(self, write: Callable[[], None], event: UpdateEvent) -> None:
        try:
            write()
        except StorageUnavailable as exc:
            self._logger.error("Persisting {} failed; skipping render: {}", type(event).__name__, exc)
            raise PersistFailed(str(exc)) from exc

    def _full_pass(self, event: UpdateEvent, now: datetime) -> FanoutReport:
        live: Set[int] = set()
        targets: List[Tuple[int, InstanceState]] = []
        for skin_type in self.registry.skin_types():
            for instance_id in self.directory.instance_ids(skin_type):
                if instance_id in live:
                    self._logger.warning(
                        "Instance {} reported under more than one skin; keeping the first.",
                        instance_id,
                    )
                    continue
                live.add(instance_id)
                targets.append((instance_id, self._ensure_state(instance_id, skin_type)))

        report = self._render_and_emit(targets, now)
        purged = self._purge_stale(live)
        self._logger.info(
            "Fan-out {}: {} view(s) painted, {} failure(s), {} stale record(s) purged",
            type(event).__name__,
            len(report.views),
            len(report.failures),
            len(purged),
        )
        return replace(report, purged=tuple(purged))

    def _update_single(
        self,
        instance_id: int,
        change: Callable[[InstanceState], InstanceState],
        event: UpdateEvent,
        now: datetime,
    ) -> FanoutReport:
        owner = self._owning_skin(instance_id)
        if owner is None:
            self._logger.warning(
                "Ignoring {} for instance {}; it is not live.", type(event).__name__, instance_id
            )
            return FanoutReport()
        current = replace(self.store.get_instance_state(instance_id), skin_type=owner)
        state = change(current)
        self._persist(lambda: self.store.set_instance_state(instance_id, state), event)
        return self._render_and_emit([(instance_id, state)], now)

    def _owning_skin(self, instance_id: int) -> Optional[SkinType]:
        if self.store.has_instance_state(instance_id):
            stored = self.store.get_instance_state(instance_id).skin_type
            if instance_id in self.directory.instance_ids(stored):
                return stored
        for skin_type in self.registry.skin_types():
            if instance_id in self.directory.instance_ids(skin_type):
                return skin_type
        return None

    def _ensure_state(self, instance_id: int, skin_type: SkinType) -> InstanceState:
        state = self.store.get_instance_state(instance_id)
        if self.store.has_instance_state(instance_id) and state.skin_type is skin_type:
            return state
        state = replace(state, skin_type=skin_type)
        try:
            self.store.set_instance_state(instance_id, state)
        except StorageUnavailable as exc:
            self._logger.warning("Could not record state for instance {}: {}", instance_id, exc)
        return state

    def _purge_stale(self, live: Set[int]) -> List[int]:
        purged: List[int] = []
        for instance_id in self.store.instance_ids():
            if instance_id in live:
                continue
            try:
                self.store.delete_instance_state(instance_id)
            except StorageUnavailable as exc:
                self._logger.warning("Could not purge stale instance {}: {}", instance_id, exc)
                continue
            self._logger.debug("Purged state for stale instance {}", instance_id)
            purged.append(instance_id)
        return purged

    def _live_moment(self, now: datetime) -> Moment:
        moment = self.store.get_moment()
        if moment.is_expired(reference=now):
            self._logger.debug("Moment expired at {}; rendering empty state.", moment.expires_at)
            return EMPTY_MOMENT
        return moment

    def _render_and_emit(self, targets: List[Tuple[int, InstanceState]], now: datetime) -> FanoutReport:
        if not targets:
            return FanoutReport()

        moment = self._live_moment(now)
        failures: List[InstanceFailure] = []
        rendered: Dict[int, RenderedView] = {}

        if self._executor is None or len(targets) == 1:
            outcomes = {
                instance_id: self._safe_render(instance_id, state, moment, now)
                for instance_id, state in targets
            }
        else:
            futures: Dict[int, Future] = {
                instance_id: self._executor.submit(self._safe_render, instance_id, state, moment, now)
                for instance_id, state in targets
            }
            outcomes = {instance_id: future.result() for instance_id, future in futures.items()}

        for instance_id, (view, failure) in outcomes.items():
            rendered[instance_id] = view
            if failure is not None:
                failures.append(failure)

        views: List[RenderedView] = []
        for instance_id in sorted(rendered):
            view = rendered[instance_id]
            try:
                self.painter.paint(view)
            except Exception as exc:  # host paint errors stay local to the instance
                self._logger.exception("Painting instance {} failed", instance_id)
                failures.append(InstanceFailure(instance_id, "paint", exc))
                continue
            views.append(view)

        return FanoutReport(views=tuple(views), failures=tuple(failures))

    def _safe_render(
        self,
        instance_id: int,
        state: InstanceState,
        moment: Moment,
        now: datetime,
    ) -> Tuple[RenderedView, Optional[InstanceFailure]]:
        try:
            photo = self._resolve(moment.photo_ref, instance_id)
            self_photo = None
            if self.registry.uses_self_photo(state.skin_type):
                self_photo = self._resolve(moment.self_photo_ref, instance_id)
            view = self.registry.render(
                instance_id, moment, state, photo, now=now, self_photo=self_photo
            )
            return view, None
        except Exception as exc:  # a broken render degrades to a placeholder
            self._logger.exception("Rendering instance {} ({}) failed", instance_id, state.skin_type.value)
            fallback = RenderedView(
                instance_id=instance_id,
                skin_type=state.skin_type,
                fields={**photo_fields(None), **size_layout(state.size_class)},
            )
            return fallback, InstanceFailure(instance_id, "render", exc)

    def _resolve(self, ref: Optional[str], instance_id: int) -> Optional[DecodedImage]:
        if not ref:
            return None
        try:
            return self.resolver.resolve(ref, self.max_dim)
        except PhotoNotFound as exc:
            self._logger.info("Instance {}: {}; showing placeholder.", instance_id, exc)
        except PhotoDecodeError as exc:
            self._logger.warning("Instance {}: {}; showing placeholder.", instance_id, exc)
        return None
