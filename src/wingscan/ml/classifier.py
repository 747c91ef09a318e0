"""Image classifier contract and the ONNX MobileNet implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from wingscan.ml.preprocessing import softmax, to_input_tensor

if TYPE_CHECKING:
    from collections.abc import Mapping

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession
    from PIL import Image

    from wingscan.imaging.sources import ImageBuffer
    from wingscan.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """A single classification prediction."""

    label: str
    probability: float


@dataclass(frozen=True)
class ClassifierConfig:
    """Variant selectors passed to a classifier loader."""

    version: int = 2
    alpha: float = 1.0
    top_k: int = 3


class ImageClassifier(Protocol):
    """Protocol for a loaded, reusable classifier."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    async def classify(self, image: ImageBuffer) -> list[Prediction]:
        """Classify an image.

        Returns:
            Predictions sorted by probability (descending).
        """
        ...


class ClassifierLoader(Protocol):
    """Protocol for the component that constructs a classifier."""

    async def load(self, config: ClassifierConfig) -> ImageClassifier:
        """Construct a ready-to-use classifier for ``config``."""
        ...


class OnnxImageClassifier:
    """MobileNet classifier backed by an ONNX Runtime session."""

    def __init__(
        self,
        name: str,
        session: InferenceSession,
        labels: Mapping[int, str],
        input_size: int,
        pool: InferencePool,
        top_k: int = 3,
    ) -> None:
        self._name = name
        self._session = session
        self._input_name: str = session.get_inputs()[0].name
        self._labels = labels
        self._input_size = input_size
        self._pool = pool
        self._top_k = top_k

    @property
    def model_name(self) -> str:
        return self._name

    async def classify(self, image: ImageBuffer) -> list[Prediction]:
        return await self._pool.run(self.predict, image.image)

    def predict(self, image: Image.Image) -> list[Prediction]:
        """Run the model synchronously and return the top-k predictions."""
        tensor = to_input_tensor(image, self._input_size)
        outputs = self._session.run(None, {self._input_name: tensor})
        logits: NDArray[np.float32] = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        return self.top_predictions(softmax(logits))

    def top_predictions(self, probs: NDArray[np.float32]) -> list[Prediction]:
        order = np.argsort(probs)[::-1][: self._top_k]
        return [
            Prediction(label=self._labels.get(int(idx), f"class {int(idx)}"), probability=float(probs[idx]))
            for idx in order
        ]
