"""Image source adapter: uploads and camera frames to one ImageBuffer.

Validation happens before any bytes are decoded. Decoding and rasterizing run
in worker threads so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Protocol

from PIL import Image, UnidentifiedImageError

from wingscan.errors import DecodeError, FileTooLarge, InvalidMediaType

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

MAX_FILE_SIZE: int = 10 * 1024 * 1024
DEFAULT_FRAME_WIDTH: int = 640
DEFAULT_FRAME_HEIGHT: int = 480
JPEG_QUALITY: int = 92

ImageOrigin = Literal["file", "camera"]


@dataclass(frozen=True)
class ImageBuffer:
    """A decoded image ready for inference."""

    image: Image.Image
    origin: ImageOrigin
    encoded: bytes | None = None
    media_type: str | None = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


class UploadedFile(Protocol):
    """File-like input with a declared media type and size (e.g. FastAPI's UploadFile)."""

    content_type: str | None
    size: int | None

    async def read(self) -> bytes: ...


@dataclass(frozen=True)
class TrackSettings:
    """Frame size reported by a live video source (None when unknown)."""

    width: int | None = None
    height: int | None = None


class VideoStream(Protocol):
    """An active live video source."""

    def settings(self) -> TrackSettings:
        """Return the size the source reports for its frames."""
        ...

    def read_frame(self) -> NDArray[np.uint8]:
        """Return the current frame as an HxWx3 RGB uint8 array."""
        ...

    def stop(self) -> None:
        """Release the underlying device."""
        ...


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def validate_upload(content_type: str | None, size: int | None, max_size: int = MAX_FILE_SIZE) -> None:
    """Reject non-image media types and oversize files."""
    if not content_type or not content_type.startswith("image/"):
        raise InvalidMediaType()
    if size is not None and size > max_size:
        raise FileTooLarge()


async def from_file(file: UploadedFile, max_size: int = MAX_FILE_SIZE) -> ImageBuffer:
    """Validate and decode an uploaded or dropped file.

    Raises:
        InvalidMediaType: If the declared type is not ``image/*``.
        FileTooLarge: If the file exceeds ``max_size`` bytes.
        DecodeError: If the bytes are not a readable image.
    """
    validate_upload(file.content_type, file.size, max_size)
    data = await file.read()
    if len(data) > max_size:
        raise FileTooLarge()
    return await decode_image(data, media_type=file.content_type)


async def decode_image(
    data: bytes | str,
    origin: ImageOrigin = "file",
    media_type: str | None = None,
) -> ImageBuffer:
    """Decode raw bytes or a base64 data URI into an ImageBuffer.

    The source bytes are kept on the buffer for previews. A data URI supplies
    its own media type.
    """
    if isinstance(data, str):
        media_type, raw = _data_uri_parts(data)
    else:
        raw = data
    image = await asyncio.to_thread(_decode_blocking, raw)
    return ImageBuffer(image=image, origin=origin, encoded=raw, media_type=media_type)


def _data_uri_parts(uri: str) -> tuple[str, bytes]:
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:image/") or not header.endswith(";base64"):
        raise DecodeError()
    try:
        return header[len("data:") : -len(";base64")], base64.b64decode(payload, validate=True)
    except binascii.Error:
        raise DecodeError() from None


def _decode_blocking(raw: bytes) -> Image.Image:
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            return img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        logger.info("Image decode failed: %s", exc)
        raise DecodeError() from None


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------


async def from_camera_frame(
    stream: VideoStream,
    width: int | None = None,
    height: int | None = None,
    quality: int = JPEG_QUALITY,
) -> ImageBuffer:
    """Snapshot the current frame of ``stream`` at the requested size.

    Falls back to the stream's reported size, then to 640x480. The raster is
    JPEG-encoded at ``quality`` and decoded back. The stream is left running.
    """
    reported = stream.settings()
    target = (
        width or reported.width or DEFAULT_FRAME_WIDTH,
        height or reported.height or DEFAULT_FRAME_HEIGHT,
    )
    encoded = await asyncio.to_thread(_rasterize_blocking, stream, target, quality)
    return await decode_image(encoded, origin="camera", media_type="image/jpeg")


def _rasterize_blocking(stream: VideoStream, size: tuple[int, int], quality: int) -> bytes:
    frame = Image.fromarray(stream.read_frame())
    if frame.size != size:
        frame = frame.resize(size, resample=Image.Resampling.BILINEAR)
    buf = io.BytesIO()
    frame.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def to_data_uri(buffer: ImageBuffer) -> str | None:
    """Return a data URI of the source bytes, for previews."""
    if buffer.encoded is None or buffer.media_type is None:
        return None
    return f"data:{buffer.media_type};base64," + base64.b64encode(buffer.encoded).decode("ascii")
