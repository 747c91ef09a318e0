"""Live camera access through OpenCV.

``open_camera`` is the scoped way to use a device: the stream is stopped when
the block exits, whether a frame was taken or not.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2

from wingscan.errors import CameraAccessError, CameraUnsupported
from wingscan.imaging.sources import TrackSettings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import numpy as np
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraConstraints:
    """Requested device and frame size for a capture."""

    index: int = 0
    width: int | None = None
    height: int | None = None


class OpenCVVideoStream:
    """VideoStream backed by a ``cv2.VideoCapture`` device."""

    def __init__(self, capture: cv2.VideoCapture) -> None:
        self._capture = capture
        self._lock = threading.Lock()
        self._stopped = False

    def settings(self) -> TrackSettings:
        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return TrackSettings(width=width or None, height=height or None)

    def read_frame(self) -> NDArray[np.uint8]:
        with self._lock:
            if self._stopped:
                raise CameraAccessError("Camera error: stream already stopped")
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraAccessError("Camera error: no frame available")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._capture.release()
        logger.info("Camera stream stopped")


async def get_stream(constraints: CameraConstraints) -> OpenCVVideoStream:
    """Open a camera device.

    Raises:
        CameraUnsupported: If OpenCV has no camera backend on this host.
        CameraAccessError: If the device cannot be opened.
    """
    if not cv2.videoio_registry.getCameraBackends():
        raise CameraUnsupported()
    return await asyncio.to_thread(_open_blocking, constraints)


def _open_blocking(constraints: CameraConstraints) -> OpenCVVideoStream:
    try:
        capture = cv2.VideoCapture(constraints.index)
    except cv2.error as exc:
        raise CameraAccessError(f"Camera error: {exc}") from exc
    if not capture.isOpened():
        capture.release()
        raise CameraAccessError(f"Camera error: device {constraints.index} could not be opened")
    if constraints.width is not None:
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
    if constraints.height is not None:
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
    logger.info("Camera %d opened", constraints.index)
    return OpenCVVideoStream(capture)


@asynccontextmanager
async def open_camera(constraints: CameraConstraints) -> AsyncIterator[OpenCVVideoStream]:
    """Open a camera for the duration of the block and always stop it afterwards."""
    stream = await get_stream(constraints)
    try:
        yield stream
    finally:
        stream.stop()
