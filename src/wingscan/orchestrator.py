"""Classification orchestrator: the single-flight state machine.

One attempt runs at a time::

    IDLE -> LOADING -> INFERRING -> PUBLISHING -> IDLE
                 \\           \\
                  ERRORED ---> IDLE

Requests arriving while an attempt is running are rejected with a
``classifier_busy`` outcome. Every failure is converted into an outcome here;
nothing propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from wingscan.errors import ClassifierBusy, ErrorKind, InferenceFailure, WingScanError
from wingscan.history import SessionState
from wingscan.imaging.camera import CameraConstraints, open_camera
from wingscan.imaging.sources import (
    JPEG_QUALITY,
    MAX_FILE_SIZE,
    from_camera_frame,
    from_file,
    to_data_uri,
)
from wingscan.ranking import RankedPrediction, rank

if TYPE_CHECKING:
    from collections.abc import Callable
    from contextlib import AbstractAsyncContextManager

    from wingscan.history import HistoryEntry
    from wingscan.imaging.sources import ImageBuffer, UploadedFile, VideoStream
    from wingscan.ml.model_session import ModelSession

    CameraOpener = Callable[[CameraConstraints], AbstractAsyncContextManager[VideoStream]]

logger = logging.getLogger(__name__)

UNRECOGNIZED_MESSAGE = "Unable to recognize this butterfly. Try a clearer photo."


class OrchestratorState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    INFERRING = "inferring"
    PUBLISHING = "publishing"
    ERRORED = "errored"


@dataclass(frozen=True)
class ClassificationOutcome:
    """What the results surface shows after one submission."""

    status: Literal["ok", "unrecognized", "error"]
    message: str = ""
    predictions: tuple[RankedPrediction, ...] = field(default_factory=tuple)
    error: ErrorKind | None = None
    preview: str | None = None

    @classmethod
    def from_error(cls, exc: WingScanError) -> ClassificationOutcome:
        return cls(status="error", message=exc.message, error=exc.kind)


class ClassificationOrchestrator:
    """Drives submissions through model acquisition, inference and publication."""

    def __init__(
        self,
        session: ModelSession,
        state: SessionState | None = None,
        *,
        max_file_size: int = MAX_FILE_SIZE,
        frame_size: tuple[int | None, int | None] = (None, None),
        jpeg_quality: int = JPEG_QUALITY,
        camera: CameraOpener = open_camera,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._session = session
        self._state = state if state is not None else SessionState()
        self._max_file_size = max_file_size
        self._frame_size = frame_size
        self._jpeg_quality = jpeg_quality
        self._camera = camera
        self._clock = clock
        self._phase = OrchestratorState.IDLE
        self._busy = False
        self._latest: ClassificationOutcome | None = None
        self._busy_listeners: list[Callable[[bool], None]] = []
        self._result_listeners: list[Callable[[ClassificationOutcome], None]] = []

    # -- Observables --------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def phase(self) -> OrchestratorState:
        return self._phase

    @property
    def latest(self) -> ClassificationOutcome | None:
        return self._latest

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return self._state.history.entries()

    @property
    def completed_scans(self) -> int:
        return self._state.completed_scans

    @property
    def model_loaded(self) -> bool:
        return self._session.loaded

    def add_busy_listener(self, listener: Callable[[bool], None]) -> None:
        self._busy_listeners.append(listener)

    def add_result_listener(self, listener: Callable[[ClassificationOutcome], None]) -> None:
        self._result_listeners.append(listener)

    # -- Entry points -------------------------------------------------------

    async def submit_file(self, file: UploadedFile) -> ClassificationOutcome:
        """Validate, decode and classify an uploaded or dropped file."""
        if self._busy:
            return self._reject(ClassifierBusy())
        try:
            image = await from_file(file, self._max_file_size)
        except WingScanError as exc:
            return self._reject(exc)
        return await self.classify(image)

    async def submit_camera_frame(self, stream: VideoStream) -> ClassificationOutcome:
        """Snapshot ``stream``, release it, and classify the snapshot."""
        try:
            if self._busy:
                return self._reject(ClassifierBusy())
            width, height = self._frame_size
            try:
                image = await from_camera_frame(stream, width, height, self._jpeg_quality)
            except WingScanError as exc:
                return self._reject(exc)
        finally:
            stream.stop()
        return await self.classify(image)

    async def capture(self, constraints: CameraConstraints) -> ClassificationOutcome:
        """Open a camera, classify one frame from it, and release it."""
        if self._busy:
            return self._reject(ClassifierBusy())
        try:
            async with self._camera(constraints) as stream:
                return await self.submit_camera_frame(stream)
        except WingScanError as exc:
            return self._reject(exc)

    async def classify(self, image: ImageBuffer) -> ClassificationOutcome:
        """Run one classification attempt on an already decoded image."""
        if self._busy:
            return self._reject(ClassifierBusy())
        self._busy = True
        try:
            self._notify_busy(True)
            outcome = await self._run(image)
            if image.encoded is not None:
                outcome = replace(outcome, preview=to_data_uri(image))
        finally:
            self._phase = OrchestratorState.IDLE
            self._busy = False
            self._notify_busy(False)
        self._publish(outcome)
        return outcome

    # -- Internal -----------------------------------------------------------

    async def _run(self, image: ImageBuffer) -> ClassificationOutcome:
        self._phase = OrchestratorState.LOADING
        try:
            classifier = await self._session.acquire()
        except WingScanError as exc:
            return self._fail(exc)

        self._phase = OrchestratorState.INFERRING
        try:
            predictions = await classifier.classify(image)
        except TimeoutError:
            return self._fail(InferenceFailure("Something went wrong: inference timed out"))
        except Exception as exc:
            logger.exception("Inference failed on %dx%d %s image", image.width, image.height, image.origin)
            reason = str(exc) or type(exc).__name__
            return self._fail(InferenceFailure(f"Something went wrong: {reason}"))

        self._phase = OrchestratorState.PUBLISHING
        ranked = rank(predictions)
        if not ranked:
            logger.info("Classifier returned no predictions")
            return ClassificationOutcome(status="unrecognized", message=UNRECOGNIZED_MESSAGE)

        self._state.record_success(predictions[0], self._clock())
        logger.info(
            "Classified %s image as %s (%s); completed scans: %d",
            image.origin,
            ranked[0].label,
            ranked[0].percentage,
            self._state.completed_scans,
        )
        return ClassificationOutcome(status="ok", predictions=tuple(ranked))

    def _fail(self, exc: WingScanError) -> ClassificationOutcome:
        self._phase = OrchestratorState.ERRORED
        logger.warning("Classification failed (%s): %s", exc.kind, exc.message)
        return ClassificationOutcome.from_error(exc)

    def _reject(self, exc: WingScanError) -> ClassificationOutcome:
        logger.info("Submission rejected (%s): %s", exc.kind, exc.message)
        outcome = ClassificationOutcome.from_error(exc)
        if exc.kind is not ErrorKind.CLASSIFIER_BUSY:
            self._publish(outcome)
        return outcome

    def _notify_busy(self, busy: bool) -> None:
        for listener in self._busy_listeners:
            try:
                listener(busy)
            except Exception:
                logger.exception("Busy listener %r failed", listener)

    def _publish(self, outcome: ClassificationOutcome) -> None:
        self._latest = outcome
        for listener in self._result_listeners:
            try:
                listener(outcome)
            except Exception:
                logger.exception("Result listener %r failed", listener)
