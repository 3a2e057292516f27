"""
Photo resolution for widget rendering: decode, bound and cache images on disk.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from PySide6.QtCore import QRectF, Qt
from PySide6.QtGui import QImage, QPainter, QPainterPath

from widget_runtime import logger as app_logger

DEFAULT_MAX_DIMENSION = 512


class PhotoError(Exception):
    """Base class for photo resolution failures; callers render a placeholder."""


class PhotoNotFound(PhotoError):
    pass


class PhotoDecodeError(PhotoError):
    pass


@dataclass(frozen=True)
class DecodedImage:
    """
    A decoded, size-bounded image.

    Equality is based on the source identity (path, modification time, bound
    and mask), not on pixel data.
    """

    path: str
    mtime_ns: int
    max_dim: int
    width: int
    height: int
    image: QImage = field(compare=False, repr=False)
    masked: bool = False


class PhotoResolver:
    """Resolves photo references to decoded images, memoised per file version."""

    def __init__(self, default_max_dim: int = DEFAULT_MAX_DIMENSION) -> None:
        self.default_max_dim = default_max_dim
        self._logger = app_logger.get_logger()
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, int], DecodedImage] = {}

    def resolve(self, ref: Optional[str], max_dim: Optional[int] = None) -> DecodedImage:
        """
        Return the decoded image for ``ref`` bounded to ``max_dim`` pixels.

        Raises PhotoNotFound when the reference is empty or the file is
        missing, and PhotoDecodeError when the data cannot be decoded.
        """
        bound = max_dim or self.default_max_dim
        path = _path_from_reference(ref)
        try:
            stat = path.stat()
        except FileNotFoundError as exc:
            self._evict(str(path))
            raise PhotoNotFound(f"Photo not found: {path}") from exc
        except OSError as exc:
            raise PhotoDecodeError(f"Unable to stat photo {path}: {exc}") from exc
        if not path.is_file():
            raise PhotoNotFound(f"Photo reference is not a file: {path}")

        key = (str(path), bound)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None and cached.mtime_ns == stat.st_mtime_ns:
            return cached

        decoded = self._decode(path, stat.st_mtime_ns, bound)
        with self._lock:
            if cached is not None:
                self._logger.debug("Photo {} changed on disk; replacing cached decode.", path)
            self._cache[key] = decoded
        return decoded

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def retain(self, refs: Iterable[Optional[str]]) -> None:
        """Drop cached decodes for every file not named in ``refs``."""
        keep = {str(_path_from_reference(ref)) for ref in refs if ref and ref.strip()}
        with self._lock:
            stale = [key for key in self._cache if key[0] not in keep]
            for key in stale:
                del self._cache[key]
        if stale:
            self._logger.debug("Dropped {} cached photo decode(s).", len(stale))

    def cached_paths(self) -> List[str]:
        with self._lock:
            return sorted({path for path, _ in self._cache})

    def _evict(self, path: str) -> None:
        with self._lock:
            for key in [key for key in self._cache if key[0] == path]:
                del self._cache[key]

    def _decode(self, path: Path, mtime_ns: int, bound: int) -> DecodedImage:
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            self._evict(str(path))
            raise PhotoNotFound(f"Photo not found: {path}") from exc
        except OSError as exc:
            raise PhotoDecodeError(f"Unable to read photo {path}: {exc}") from exc

        image = QImage.fromData(data)
        if image.isNull():
            raise PhotoDecodeError(f"Photo data could not be decoded: {path}")

        width, height = scaled_size(image.width(), image.height(), bound)
        if (width, height) != (image.width(), image.height()):
            image = image.scaled(
                width,
                height,
                Qt.AspectRatioMode.IgnoreAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )
        self._logger.debug("Decoded photo {} at {}x{}", path, width, height)
        return DecodedImage(
            path=str(path),
            mtime_ns=mtime_ns,
            max_dim=bound,
            width=width,
            height=height,
            image=image,
        )


def scaled_size(width: int, height: int, max_dim: int) -> Tuple[int, int]:
    """Return the aspect-preserving size bounded by ``max_dim``, rounded half-up."""
    if width <= max_dim and height <= max_dim:
        return width, height
    scale = min(max_dim / width, max_dim / height)
    return max(1, int(width * scale + 0.5)), max(1, int(height * scale + 0.5))


def mask_circular(decoded: DecodedImage) -> DecodedImage:
    """Return a centre-cropped square copy with everything outside the circle transparent."""
    size = min(decoded.width, decoded.height)
    output = QImage(size, size, QImage.Format.Format_ARGB32_Premultiplied)
    output.fill(Qt.GlobalColor.transparent)

    source = QRectF(
        (decoded.width - size) / 2.0,
        (decoded.height - size) / 2.0,
        size,
        size,
    )
    clip = QPainterPath()
    clip.addEllipse(QRectF(0, 0, size, size))

    painter = QPainter(output)
    try:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
        painter.setClipPath(clip)
        painter.drawImage(QRectF(0, 0, size, size), decoded.image, source)
    finally:
        painter.end()

    return DecodedImage(
        path=decoded.path,
        mtime_ns=decoded.mtime_ns,
        max_dim=decoded.max_dim,
        width=size,
        height=size,
        image=output,
        masked=True,
    )


def _path_from_reference(ref: Optional[str]) -> Path:
    if ref is None or not ref.strip():
        raise PhotoNotFound("No photo reference provided.")
    reference = ref.strip()
    if reference.lower().startswith("file://"):
        reference = unquote(urlparse(reference).path)
    return Path(reference)
