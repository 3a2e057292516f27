"""
Host-owned directory of live widget instances.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Protocol, Set

from shared.moment import SkinType


class InstanceDirectory(Protocol):
    """Answers which instance ids of a skin are currently placed by the host."""

    def instance_ids(self, skin_type: SkinType) -> List[int]:
        ...


class InMemoryInstanceDirectory:
    """Directory kept by the host process itself, e.g. a headless runtime or tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_skin: Dict[SkinType, Set[int]] = {}

    def add(self, instance_id: int, skin_type: SkinType) -> None:
        with self._lock:
            for ids in self._by_skin.values():
                ids.discard(instance_id)
            self._by_skin.setdefault(skin_type, set()).add(instance_id)

    def remove(self, instance_id: int) -> None:
        with self._lock:
            for ids in self._by_skin.values():
                ids.discard(instance_id)

    def instance_ids(self, skin_type: SkinType) -> List[int]:
        with self._lock:
            return sorted(self._by_skin.get(skin_type, ()))
