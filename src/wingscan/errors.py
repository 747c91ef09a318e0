"""Error taxonomy for the classification pipeline.

Every failure the pipeline can hit is a ``WingScanError`` carrying an
``ErrorKind`` and a user-facing message. The orchestrator converts them into
outcomes; the API layer maps kinds to HTTP statuses.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class ErrorKind(StrEnum):
    INVALID_MEDIA_TYPE = "invalid_media_type"
    FILE_TOO_LARGE = "file_too_large"
    DECODE_ERROR = "decode_error"
    MODEL_UNAVAILABLE = "model_unavailable"
    MODEL_LOAD_ERROR = "model_load_error"
    INFERENCE_FAILURE = "inference_failure"
    CAMERA_UNSUPPORTED = "camera_unsupported"
    CAMERA_ACCESS_ERROR = "camera_access_error"
    CLASSIFIER_BUSY = "classifier_busy"


_DEFAULT_MESSAGE: Final[dict[ErrorKind, str]] = {
    ErrorKind.INVALID_MEDIA_TYPE: "Please upload a valid image file.",
    ErrorKind.FILE_TOO_LARGE: "Image is too large. Keep it under 10 MB.",
    ErrorKind.DECODE_ERROR: "Could not load image",
    ErrorKind.MODEL_UNAVAILABLE: "Classifier model failed to load",
    ErrorKind.MODEL_LOAD_ERROR: "Classifier model failed to load",
    ErrorKind.INFERENCE_FAILURE: "Inference failed",
    ErrorKind.CAMERA_UNSUPPORTED: "This device does not support camera capture.",
    ErrorKind.CAMERA_ACCESS_ERROR: "Camera could not be opened",
    ErrorKind.CLASSIFIER_BUSY: "A classification is already in progress. Try again when it finishes.",
}


class WingScanError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind

    def __init__(self, message: str | None = None) -> None:
        self.message = message if message is not None else _DEFAULT_MESSAGE[self.kind]
        super().__init__(self.message)


class InvalidMediaType(WingScanError):
    kind = ErrorKind.INVALID_MEDIA_TYPE


class FileTooLarge(WingScanError):
    kind = ErrorKind.FILE_TOO_LARGE


class DecodeError(WingScanError):
    kind = ErrorKind.DECODE_ERROR


class ModelUnavailable(WingScanError):
    kind = ErrorKind.MODEL_UNAVAILABLE


class ModelLoadError(WingScanError):
    kind = ErrorKind.MODEL_LOAD_ERROR


class InferenceFailure(WingScanError):
    kind = ErrorKind.INFERENCE_FAILURE


class CameraUnsupported(WingScanError):
    kind = ErrorKind.CAMERA_UNSUPPORTED


class CameraAccessError(WingScanError):
    kind = ErrorKind.CAMERA_ACCESS_ERROR


class ClassifierBusy(WingScanError):
    kind = ErrorKind.CLASSIFIER_BUSY
